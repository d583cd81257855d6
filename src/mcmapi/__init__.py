"""
MC-Market API SDK for Python.

A synchronous, thread-safe wrapper for the MC-Market HTTP API. Requests are
queued and may be dynamically delayed to stay within the API's read and
write rate limits; HTTP 429 rejections are retried transparently.

Quick Start:
    >>> from mcmapi import MCMClient
    >>> client = MCMClient.connect(token="y6xWrGkA...")
    >>> response = client.get("/resources")
    >>> if response.is_success():
    ...     print(response.data)
    ... else:
    ...     print(response.error.code)

Global Configuration:
    >>> from mcmapi import MCM
    >>> MCM.configure(
    ...     auth={"token": "y6xWrGkA...", "token_type": "Shared"},
    ...     rate_limit={"write_burst_limit": 1, "write_burst_window": 1000},
    ... )

Main Classes:
    - MCMClient: Client facade (get/post/patch/delete, health, ping).
    - RequestExecutor: Sends a request, absorbing HTTP 429 rejections.
    - RequestThrottle: Thread-safe per-class rate-limit state.
    - ApiResponse / ApiError: Decoded response envelope.
"""

from importlib.metadata import version as _get_version

__version__ = _get_version("mcmapi")

from mcmapi._auth import (
    AuthenticationError,
    AuthProvider,
    TokenAuthProvider,
    TokenType,
    create_token_auth,
)
from mcmapi._client import ClientOptions, MCMClient
from mcmapi._config import (
    MCM,
    AuthConfig,
    ConfigEnvVarError,
    ConfigValidationError,
    HttpConfig,
    MCMConfig,
    RateLimitConfig,
)
from mcmapi._executor import (
    ExecutionState,
    ProtocolViolationError,
    RateLimitRetriesExceededError,
    RequestCancelledError,
    RequestExecutor,
    RequestThrottledError,
    StallTimeoutError,
)
from mcmapi._http import HttpClient, StandaloneHttpClient
from mcmapi._models import (
    ApiError,
    ApiRequestError,
    ApiResponse,
    ResponseDecodeError,
    SortOptions,
)
from mcmapi._throttle import (
    OK,
    CooldownDeadline,
    Limited,
    Ok,
    RateWindowTracker,
    RequestClass,
    RequestThrottle,
    WindowCounter,
    monotonic_millis,
)

__all__ = [
    "__version__",
    # Configuration
    "MCM",
    "MCMConfig",
    "AuthConfig",
    "HttpConfig",
    "RateLimitConfig",
    "ConfigEnvVarError",
    "ConfigValidationError",
    # Authentication
    "AuthProvider",
    "TokenAuthProvider",
    "TokenType",
    "AuthenticationError",
    "create_token_auth",
    # HTTP Client
    "HttpClient",
    "StandaloneHttpClient",
    # Throttling
    "RequestClass",
    "WindowCounter",
    "CooldownDeadline",
    "RateWindowTracker",
    "RequestThrottle",
    "Ok",
    "OK",
    "Limited",
    "monotonic_millis",
    # Execution
    "RequestExecutor",
    "ExecutionState",
    "ProtocolViolationError",
    "RequestThrottledError",
    "RateLimitRetriesExceededError",
    "StallTimeoutError",
    "RequestCancelledError",
    # Models
    "ApiResponse",
    "ApiError",
    "ApiRequestError",
    "ResponseDecodeError",
    "SortOptions",
    # Client
    "MCMClient",
    "ClientOptions",
]
