"""
Authentication providers for the mcmapi SDK.

The API authenticates every request with an `Authorization` header of the
form `<type> <token>`, where type is "Private" or "Shared". Token contents
are opaque to the SDK.

Example:
    >>> from mcmapi._auth import TokenAuthProvider
    >>> auth = TokenAuthProvider(token="y6xWrGkAzh8Gp4qBWFMG7tDyB+zB+Lub")
    >>> auth.get_auth_headers()
    {'Authorization': 'Private y6xWrGkAzh8Gp4qBWFMG7tDyB+zB+Lub'}
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Literal, override

if TYPE_CHECKING:
    from mcmapi._config import AuthConfig

TokenType = Literal["Private", "Shared"]

VALID_TOKEN_TYPES: tuple[str, ...] = ("Private", "Shared")


class AuthenticationError(Exception):
    """
    Raised when no usable credentials are available.

    Attributes:
        message: Description of the authentication failure.
    """

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class AuthProvider(ABC):
    """
    Abstract base class for authentication providers.

    Implementations must be thread-safe.
    """

    @abstractmethod
    def get_auth_headers(self) -> dict[str, str]:
        """
        Return authorization headers for HTTP requests.

        Raises:
            AuthenticationError: If unable to build the headers.
        """
        pass


class TokenAuthProvider(AuthProvider):
    """
    Static API token authentication.

    Args:
        token: The API token.
        token_type: "Private" (default) or "Shared".
    """

    def __init__(self, token: str, token_type: TokenType = "Private"):
        assert token, "token cannot be empty."
        assert token_type in VALID_TOKEN_TYPES, f"token_type must be one of {VALID_TOKEN_TYPES}."

        self._token = token
        self.token_type = token_type

    @override
    def get_auth_headers(self) -> dict[str, str]:
        return {"Authorization": f"{self.token_type} {self._token}"}

    def __repr__(self) -> str:
        return f"TokenAuthProvider(token_type={self.token_type!r}, token='***')"


def create_token_auth(
    token: str | None = None,
    token_type: TokenType | None = None,
    config: AuthConfig | None = None,
) -> TokenAuthProvider:
    """
    Create a TokenAuthProvider from explicit values or the global config.

    Args:
        token: API token. If None, uses `MCM.config.auth.token`.
        token_type: Token type. If None, uses `MCM.config.auth.token_type`.
        config: Optional AuthConfig to use instead of the global config.

    Raises:
        AuthenticationError: If no token is available.
    """
    if config is None:
        from mcmapi._config import MCM
        config = MCM.config.auth

    resolved_token = token or config.token
    if not resolved_token:
        raise AuthenticationError(
            "No API token available. Either:\n"
            "  1. Pass token=... to the client\n"
            "  2. Set the MCM_AUTH_TOKEN environment variable\n"
            "  3. Call MCM.configure(auth={'token': ...}) at startup"
        )
    return TokenAuthProvider(
        token=resolved_token,
        token_type=token_type or config.token_type,
    )
