"""
Data models for API responses.

Every API response body is an envelope:

    {"result": "success", "data": ...}
    {"result": "error", "error": {"code": "...", "message": "..."}}

This module contains:
- ApiError: Structured error carried by an "error" envelope (frozen/immutable)
- ApiResponse: Decoded envelope, generic over the success payload type
- SortOptions: Opaque sort/order/page query parameters
- decode_envelope: Decodes an HTTP response into an ApiResponse
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar
from urllib.parse import urlencode

import requests

logger = logging.getLogger(__name__)

D = TypeVar("D")

# Converts the raw "data" field of a successful envelope into a typed value.
Decoder = Callable[[Any], D]

RESULT_SUCCESS = "success"
RESULT_ERROR = "error"


# =============================================================================
# Exceptions
# =============================================================================


class ResponseDecodeError(Exception):
    """
    Raised when a response body does not match the expected envelope or type.

    Attributes:
        message: Human-readable error message.
        status_code: HTTP status code of the response.
        cause: The underlying exception, if any.

    Example:
        >>> try:
        ...     response = client.get("/resources")
        ... except ResponseDecodeError as e:
        ...     if e.is_nominal_success:
        ...         print(f"Malformed success body: {e}")
    """

    def __init__(self, message: str, status_code: int, cause: Exception | None = None):
        super().__init__(f"{message} (HTTP {status_code})")
        self.message = message
        self.status_code = status_code
        self.cause = cause

    @property
    def is_nominal_success(self) -> bool:
        """True if the HTTP status claimed success (below 400)."""
        return self.status_code < 400


class ApiRequestError(Exception):
    """
    Raised by `ApiResponse.unwrap()` when the API answered with an error envelope.

    Attributes:
        error: The structured API error.
    """

    def __init__(self, error: "ApiError"):
        super().__init__(f"{error.code}: {error.message}")
        self.error = error

    @property
    def code(self) -> str:
        return self.error.code


# =============================================================================
# Models
# =============================================================================


@dataclass(frozen=True)
class ApiError:
    """
    Structured error returned by the API (e.g. "ContentNotFoundError").

    Attributes:
        code: Machine-readable error code.
        message: Human-readable description.
    """
    code: str
    message: str

    @classmethod
    def from_dict(cls, raw: Any) -> "ApiError":
        if not isinstance(raw, dict):
            raise TypeError(f"error must be an object, got {type(raw).__name__}")
        code, message = raw.get("code"), raw.get("message")
        if not isinstance(code, str) or not isinstance(message, str):
            raise TypeError("error must have string 'code' and 'message' fields")
        return cls(code=code, message=message)


@dataclass(frozen=True)
class ApiResponse(Generic[D]):
    """
    Decoded response envelope.

    API-level errors are a normal outcome, not an exception: check
    `is_success()` / `is_error()` or call `unwrap()`.

    Attributes:
        result: Either "success" or "error".
        data: Decoded payload (success only).
        error: Structured error (error only).
        status_code: HTTP status code of the response.

    Example:
        >>> response = client.get("/resources/1234")
        >>> if response.is_success():
        ...     print(response.data)
        ... else:
        ...     print(response.error.code)
    """
    result: str
    data: D | None = None
    error: ApiError | None = None
    status_code: int | None = None

    def is_success(self) -> bool:
        return self.result == RESULT_SUCCESS

    def is_error(self) -> bool:
        return self.result == RESULT_ERROR

    def unwrap(self) -> D:
        """
        Return the payload, raising ApiRequestError for an error envelope.

        Raises:
            ApiRequestError: If the envelope carries an API error.
        """
        if self.is_error():
            assert self.error is not None
            raise ApiRequestError(self.error)
        return self.data  # type: ignore[return-value]


@dataclass(frozen=True)
class SortOptions:
    """
    Sort, order and page query parameters.

    Values are forwarded to the API as given.

    Example:
        >>> SortOptions(sort="title", order="asc", page=2).to_query_string()
        'sort=title&order=asc&page=2'
    """
    sort: str | None = None
    order: str | None = None
    page: int | None = None

    def to_query_string(self) -> str:
        params = {
            "sort": self.sort,
            "order": self.order,
            "page": self.page,
        }
        return urlencode({k: v for k, v in params.items() if v is not None})

    def apply_to(self, url: str) -> str:
        query = self.to_query_string()
        if not query:
            return url
        separator = "&" if "?" in url else "?"
        return f"{url}{separator}{query}"


# =============================================================================
# Decoding
# =============================================================================


def decode_envelope(
    response: requests.Response,
    decoder: Decoder[D] | None = None,
) -> ApiResponse[D]:
    """
    Decode an HTTP response body into an ApiResponse.

    Args:
        response: The HTTP response (any status except 429).
        decoder: Optional converter applied to the "data" field of a
            successful envelope. Defaults to the raw JSON value.

    Returns:
        The decoded ApiResponse (success or API error).

    Raises:
        ResponseDecodeError: If the body is not valid JSON, is not an
            envelope, or is internally inconsistent.
    """
    status_code = response.status_code

    try:
        body = response.json()
    except ValueError as e:
        raise ResponseDecodeError("Response body is not valid JSON", status_code, cause=e) from e

    if not isinstance(body, dict):
        raise ResponseDecodeError(
            f"Response body must be an object, got {type(body).__name__}", status_code
        )

    result = body.get("result")
    if result == RESULT_SUCCESS:
        if "data" not in body:
            raise ResponseDecodeError("missing data on success", status_code)
        raw_data = body["data"]
        try:
            data = decoder(raw_data) if decoder else raw_data
        except Exception as e:
            raise ResponseDecodeError(f"Unable to decode data: {e}", status_code, cause=e) from e
        return ApiResponse(result=RESULT_SUCCESS, data=data, status_code=status_code)

    if result == RESULT_ERROR:
        if body.get("error") is None:
            raise ResponseDecodeError("missing error on error", status_code)
        try:
            error = ApiError.from_dict(body["error"])
        except TypeError as e:
            raise ResponseDecodeError(f"Malformed error: {e}", status_code, cause=e) from e
        logger.debug(f"API error | HTTP {status_code} | {error.code}: {error.message}")
        return ApiResponse(result=RESULT_ERROR, error=error, status_code=status_code)

    raise ResponseDecodeError(f"Unknown envelope result: {result!r}", status_code)
