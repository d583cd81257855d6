"""
Client facade for the MC-Market API.

MCMClient owns one RequestThrottle and one RequestExecutor and exposes the
raw request methods used by resource-specific helpers:

- get(): READ request
- post() / patch() / delete(): WRITE requests

Requests are queued and may be delayed locally to stay within the API's
rate limits; callers only observe added latency.
"""

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from mcmapi._auth import TokenType
    from mcmapi._config import HttpConfig

from mcmapi._executor import RequestExecutor
from mcmapi._http import HttpClient
from mcmapi._models import ApiError, ApiRequestError, ApiResponse, D, Decoder, SortOptions
from mcmapi._throttle import Clock, RequestClass, RequestThrottle

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ClientOptions:
    """
    Configuration options for MCMClient.

    Fields set to None use values from global config (MCM.config.http).

    Attributes:
        base_url: Base API URL prepended to all endpoints.
        request_timeout: Transport timeout in seconds.
        max_workers: Thread-pool size for `get_many()`.
    """
    base_url: str | None = None
    request_timeout: int | None = None
    max_workers: int | None = None

    def with_defaults_from(self, cfg: "HttpConfig") -> "ClientOptions":
        """Return new options with None values filled from config."""
        return ClientOptions(
            base_url=self.base_url if self.base_url is not None else cfg.base_url,
            request_timeout=self.request_timeout if self.request_timeout is not None else cfg.request_timeout,
            max_workers=self.max_workers if self.max_workers is not None else cfg.max_workers,
        )


class MCMClient:
    """
    Synchronous, thread-safe client for the MC-Market API.

    Example:
        >>> from mcmapi import MCMClient, SortOptions
        >>> client = MCMClient.connect(token="y6xWrGkA...")
        >>> response = client.get("/resources", sort=SortOptions(page=2))
        >>> if response.is_success():
        ...     print(response.data)

    Attributes:
        base_url: The base URL of the API.
        options: Resolved client options.
        http_client: Transport used by the executor.
        throttle: Shared rate-limit state.
        executor: Retry-aware executor used by every request.
    """

    def __init__(
        self,
        token: str | None = None,
        token_type: "TokenType | None" = None,
        options: ClientOptions | None = None,
        http_client: HttpClient | None = None,
        throttle: RequestThrottle | None = None,
        clock: Clock | None = None,
    ):
        """
        Initialize the client.

        Args:
            token: API token. If None, uses MCM.config.auth.token.
                Ignored when http_client is given.
            token_type: "Private" or "Shared". If None, uses MCM.config.auth.token_type.
            options: Client options; None fields use MCM.config.http.
            http_client: Custom transport. If None, uses StandaloneHttpClient.
            throttle: Custom throttle. If None, built from MCM.config.rate_limit.
            clock: Millisecond clock for the default throttle.

        Raises:
            AuthenticationError: If no http_client is given and no token is available.
        """
        from mcmapi._config import MCM
        cfg = MCM.config

        resolved_options = (options or ClientOptions()).with_defaults_from(cfg.http)

        if http_client is None:
            from mcmapi._auth import create_token_auth
            from mcmapi._http import StandaloneHttpClient
            http_client = StandaloneHttpClient(
                auth_provider=create_token_auth(token, token_type),
                https_only=cfg.http.https_only,
            )

        if throttle is None:
            throttle = RequestThrottle.from_config(cfg.rate_limit, clock=clock)

        assert resolved_options.base_url, "Client base_url cannot be empty."

        self.base_url = resolved_options.base_url.rstrip("/")
        self.options = resolved_options
        self.http_client = http_client
        self.throttle = throttle
        self.executor = RequestExecutor(
            http_client=http_client,
            throttle=throttle,
            max_retries=cfg.rate_limit.max_retries,
            max_wait_time=cfg.rate_limit.max_wait_time,
            request_timeout=resolved_options.request_timeout or cfg.http.request_timeout,
        )

    @classmethod
    def connect(cls, *args: Any, **kwargs: Any) -> "MCMClient":
        """
        Build a client and verify the API is reachable via `health()`.

        Accepts the same arguments as the constructor.

        Raises:
            ApiRequestError: If the health check fails.
        """
        client = cls(*args, **kwargs)
        client.health()
        logger.info(f"Connected to {client.base_url}")
        return client

    def url_for(self, endpoint: str, sort: SortOptions | None = None) -> str:
        """Join an endpoint (absolute URL or path) to the base URL and apply sort options."""
        if endpoint.startswith(("http://", "https://")):
            url = endpoint
        else:
            url = f"{self.base_url}/{endpoint.lstrip('/')}"
        return sort.apply_to(url) if sort else url

    def get(
        self,
        endpoint: str,
        sort: SortOptions | None = None,
        decoder: Decoder[D] | None = None,
        cancel_event: threading.Event | None = None,
    ) -> ApiResponse[D]:
        """Send a READ request."""
        return self.executor.execute(
            RequestClass.READ, "GET", self.url_for(endpoint, sort),
            decoder=decoder, cancel_event=cancel_event,
        )

    def post(
        self,
        endpoint: str,
        body: Any,
        decoder: Decoder[D] | None = None,
        cancel_event: threading.Event | None = None,
    ) -> ApiResponse[D]:
        """Send a WRITE request with a JSON body."""
        return self.executor.execute(
            RequestClass.WRITE, "POST", self.url_for(endpoint),
            body=body, decoder=decoder, cancel_event=cancel_event,
        )

    def patch(
        self,
        endpoint: str,
        body: Any,
        decoder: Decoder[D] | None = None,
        cancel_event: threading.Event | None = None,
    ) -> ApiResponse[D]:
        """Send a WRITE request with a JSON body."""
        return self.executor.execute(
            RequestClass.WRITE, "PATCH", self.url_for(endpoint),
            body=body, decoder=decoder, cancel_event=cancel_event,
        )

    def delete(
        self,
        endpoint: str,
        decoder: Decoder[D] | None = None,
        cancel_event: threading.Event | None = None,
    ) -> ApiResponse[D]:
        """Send a WRITE request."""
        return self.executor.execute(
            RequestClass.WRITE, "DELETE", self.url_for(endpoint),
            decoder=decoder, cancel_event=cancel_event,
        )

    def get_many(
        self,
        endpoints: list[str],
        decoder: Decoder[D] | None = None,
    ) -> list[ApiResponse[D]]:
        """
        Send several READ requests concurrently and wait for all of them.

        All requests share this client's throttle, so the batch as a whole
        stays within the READ budget.

        Returns:
            One response per endpoint, in the same order.

        Raises:
            Exception: The first fatal error, in endpoint order, if any request failed.
        """
        if not endpoints:
            return []

        logger.info(f"Starting batch of {len(endpoints)} READ requests (max_workers={self.options.max_workers})")
        with ThreadPoolExecutor(max_workers=self.options.max_workers) as pool:
            futures = [pool.submit(self.get, endpoint, decoder=decoder) for endpoint in endpoints]
            responses = [future.result() for future in futures]

        assert len(responses) == len(endpoints), (
            f"🌀 Sanity check | Unexpected mismatch: responses(size={len(responses)}) "
            f"is different from endpoints(size={len(endpoints)})."
        )
        return responses

    def health(self) -> None:
        """
        Send a request which is expected to always succeed under nominal conditions.

        Raises:
            ApiRequestError: If the API answers with an error or unexpected data.
        """
        data = self.get("/health").unwrap()
        if data != "ok":
            raise ApiRequestError(ApiError(code="HealthEndpointError", message=f'{data} != "ok"'))

    def metrics(self, decoder: Decoder[D] | None = None) -> ApiResponse[D]:
        """
        Fetch the metrics snapshot of the prior minute (staff only).

        The endpoint is meant to be polled once a minute; the payload is
        returned as raw JSON unless a decoder is given.
        """
        return self.get("/metrics", decoder=decoder)

    def ping(self) -> float:
        """
        Measure, in seconds, how long a health check takes.

        The duration includes any local stall imposed by the throttle.
        """
        start = time.monotonic()
        self.health()
        return time.monotonic() - start
