"""
HTTP transport abstraction for the mcmapi SDK.

The transport only performs the network call. It does not throttle, retry
or decode; that is the job of the RequestExecutor.

Available implementations:
    - HttpClient: Abstract base class for transports.
    - StandaloneHttpClient: `requests.Session` based transport using an AuthProvider.

Example:
    >>> from mcmapi._auth import TokenAuthProvider
    >>> from mcmapi._http import StandaloneHttpClient
    >>> client = StandaloneHttpClient(auth_provider=TokenAuthProvider("my-token"))
    >>> response = client.get("https://api.mc-market.org/v1/health")
"""

import logging
import threading
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, override

import requests

logger = logging.getLogger(__name__)

if TYPE_CHECKING:
    from mcmapi._auth import AuthProvider


class HttpClient(ABC):
    """
    Abstract base class for HTTP transports.

    Subclasses implement `send()`; the verb helpers delegate to it.

    Example:
        >>> class MyHttpClient(HttpClient):
        ...     def send(self, method, url, body=None, headers=None, timeout=30):
        ...         return requests.request(method, url, json=body, headers=headers, timeout=timeout)
    """

    @abstractmethod
    def send(
        self,
        method: str,
        url: str,
        body: Any | None = None,
        headers: dict[str, str] | None = None,
        timeout: int = 30,
    ) -> requests.Response:
        """
        Execute an authenticated request.

        Args:
            method: HTTP method (GET, POST, PATCH, DELETE).
            url: The full URL to request.
            body: JSON-serializable request body, if any.
            headers: Additional headers to include (merged with auth headers).
            timeout: Request timeout in seconds.

        Returns:
            The HTTP response, whatever its status code.

        Raises:
            requests.RequestException: If the HTTP request fails.
        """
        pass

    def get(self, url: str, headers: dict[str, str] | None = None, timeout: int = 30) -> requests.Response:
        return self.send("GET", url, headers=headers, timeout=timeout)

    def post(
        self,
        url: str,
        body: Any | None = None,
        headers: dict[str, str] | None = None,
        timeout: int = 30,
    ) -> requests.Response:
        return self.send("POST", url, body=body, headers=headers, timeout=timeout)

    def patch(
        self,
        url: str,
        body: Any | None = None,
        headers: dict[str, str] | None = None,
        timeout: int = 30,
    ) -> requests.Response:
        return self.send("PATCH", url, body=body, headers=headers, timeout=timeout)

    def delete(self, url: str, headers: dict[str, str] | None = None, timeout: int = 30) -> requests.Response:
        return self.send("DELETE", url, headers=headers, timeout=timeout)


class StandaloneHttpClient(HttpClient):
    """
    HTTP transport using an AuthProvider and a per-thread `requests.Session`.

    Sessions are not guaranteed to be thread-safe, so each worker thread
    gets its own session (and connection pool).

    Args:
        auth_provider: Provider for authorization headers.
        https_only: Reject non-https URLs (default: True).
    """

    def __init__(self, auth_provider: "AuthProvider", https_only: bool = True):
        from mcmapi._auth import AuthProvider

        assert auth_provider is not None, "auth_provider cannot be None"
        assert isinstance(auth_provider, AuthProvider), "auth_provider must be an AuthProvider instance"

        self._auth = auth_provider
        self.https_only = https_only
        self._local = threading.local()

    def _session(self) -> requests.Session:
        session: requests.Session | None = getattr(self._local, "session", None)
        if session is None:
            session = requests.Session()
            self._local.session = session
        return session

    @override
    def send(
        self,
        method: str,
        url: str,
        body: Any | None = None,
        headers: dict[str, str] | None = None,
        timeout: int = 30,
    ) -> requests.Response:
        """
        Execute an authenticated request.

        Raises:
            AssertionError: If url is empty, not https (when https_only) or timeout is invalid.
            requests.RequestException: If the HTTP request fails.
        """
        assert method, "Method cannot be empty."
        assert url, "URL cannot be empty."
        assert not self.https_only or url.startswith("https://"), f"Only https URLs are allowed: {url}"
        assert timeout is not None, "Timeout cannot be None."
        assert timeout > 0, "Timeout must be greater than 0."

        merged_headers = {**self._auth.get_auth_headers(), **(headers or {})}

        logger.debug(f"HTTP | {method} {url}")
        return self._session().request(
            method,
            url,
            json=body,
            headers=merged_headers,
            timeout=timeout,
        )
