"""
Retry-aware request execution.

A RequestExecutor sends one logical request to completion, transparently
absorbing any number of HTTP 429 rejections:

    STALLING -> SENDING -> DONE
        ^          |
        +----------+  (429: record cool-down, stall again)

1. Stall: ask the throttle how long to wait and sleep until it answers 0.
   Another thread may take a freed slot first, so the check is repeated.
2. Send: call the transport. Transport errors are not retried here.
3. Classify: on 429 record the Retry-After cool-down and go back to 1;
   otherwise decode the envelope and return it.

Example:
    >>> executor = RequestExecutor(http_client=client, throttle=RequestThrottle())
    >>> response = executor.execute(RequestClass.READ, "GET", "https://api.mc-market.org/v1/health")
    >>> response.unwrap()
    'ok'
"""

import enum
import logging
import threading
import time
from collections.abc import Callable
from typing import Any

import requests

from mcmapi._http import HttpClient
from mcmapi._models import ApiResponse, D, Decoder, decode_envelope
from mcmapi._throttle import OK, Limited, RequestClass, RequestThrottle

logger = logging.getLogger(__name__)

HTTP_TOO_MANY_REQUESTS = 429

# Retry-After is expressed in seconds; the throttle works in milliseconds.
RETRY_AFTER_UNIT_MS = 1000

# Largest Retry-After (in seconds) accepted from the server.
# Protects against abusive or buggy servers sending unreasonably large values.
MAX_RETRY_AFTER = 86_400


# =============================================================================
# Exceptions
# =============================================================================


class ProtocolViolationError(Exception):
    """
    Raised when the server breaks the rate-limit contract.

    A 429 response must carry a Retry-After header holding a non-negative
    integer number of seconds.

    Attributes:
        response: The offending HTTP response.
    """

    def __init__(self, message: str, response: requests.Response):
        super().__init__(message)
        self.response = response


class RequestThrottledError(Exception):
    """Base class for requests abandoned while being throttled."""

    pass


class RateLimitRetriesExceededError(RequestThrottledError):
    """
    Raised when a request was rejected with 429 more times than `max_retries`.

    Attributes:
        rejections: Number of 429 responses received.
        max_retries: The configured ceiling.
    """

    def __init__(self, rejections: int, max_retries: int):
        self.rejections = rejections
        self.max_retries = max_retries
        super().__init__(
            f"Rate limit retries exceeded: {rejections} rejections, max_retries={max_retries}"
        )


class StallTimeoutError(RequestThrottledError):
    """
    Raised when a request would have to stall longer than `max_wait_time`.

    Attributes:
        waited: Seconds already spent stalling.
        max_wait_time: The configured ceiling in seconds.
    """

    def __init__(self, waited: float, max_wait_time: float):
        self.waited = waited
        self.max_wait_time = max_wait_time
        super().__init__(
            f"Stall timeout: waited {waited:.2f}s, max_wait_time={max_wait_time:.2f}s"
        )


class RequestCancelledError(RequestThrottledError):
    """Raised when the caller cancels a request while it is stalling."""

    pass


# =============================================================================
# State machine
# =============================================================================


class ExecutionState(enum.StrEnum):
    """
    Lifecycle of one logical request.

    Attributes:
        STALLING: Waiting for the throttle to allow the request.
        SENDING: Request handed to the transport; response being classified.
        DONE: A decoded envelope was returned.
        FAILED: A fatal error ended the request.
    """
    STALLING = "STALLING"
    SENDING = "SENDING"
    DONE = "DONE"
    FAILED = "FAILED"

    def __str__(self) -> str:
        return self.value


_VALID_TRANSITIONS: dict[ExecutionState, frozenset[ExecutionState]] = {
    ExecutionState.STALLING: frozenset({ExecutionState.SENDING, ExecutionState.FAILED}),
    ExecutionState.SENDING:  frozenset({ExecutionState.STALLING, ExecutionState.DONE, ExecutionState.FAILED}),
    ExecutionState.DONE:     frozenset(),
    ExecutionState.FAILED:   frozenset(),
}


class _Execution:
    """Mutable tracker of one logical request (internal)."""

    def __init__(self, request_class: RequestClass, method: str, url: str):
        self.request_class = request_class
        self.method = method
        self.url = url
        self.state = ExecutionState.STALLING
        self.rejections = 0
        self.stalled_ms = 0

    def transition_to(self, new_state: ExecutionState) -> None:
        assert new_state in _VALID_TRANSITIONS[self.state], (
            f"🌀 Sanity check | Invalid transition: {self.state} -> {new_state}"
        )
        self.state = new_state

    @property
    def is_terminal(self) -> bool:
        return not _VALID_TRANSITIONS[self.state]

    def __str__(self) -> str:
        return f"{self.request_class} {self.method} {self.url}"


# =============================================================================
# Executor
# =============================================================================


def parse_retry_after(response: requests.Response) -> int:
    """
    Parse the Retry-After header of a 429 response into milliseconds.

    Raises:
        ProtocolViolationError: If the header is missing, not an integer, negative,
            not plain delta-seconds (ASCII digits only) or above MAX_RETRY_AFTER.
    """
    header = response.headers.get("Retry-After")
    if header is None:
        raise ProtocolViolationError("Rate-limited response has no Retry-After header", response)
    value = str(header).strip()
    try:
        seconds = int(value)
    except ValueError as e:
        raise ProtocolViolationError(f"Retry-After is not an integer: {header!r}", response) from e
    if seconds < 0:
        raise ProtocolViolationError(f"Retry-After is negative: {header!r}", response)
    if not (value.isascii() and value.isdigit()):
        raise ProtocolViolationError(f"Retry-After is not delta-seconds: {header!r}", response)
    if seconds > MAX_RETRY_AFTER:
        raise ProtocolViolationError(
            f"Retry-After exceeds MAX_RETRY_AFTER ({MAX_RETRY_AFTER}s): {header!r}", response
        )
    return seconds * RETRY_AFTER_UNIT_MS


class RequestExecutor:
    """
    Sends requests through a shared RequestThrottle, retrying on HTTP 429.

    Thread-safe: any number of threads may call `execute()` concurrently;
    the only shared mutable state is the throttle.

    Args:
        http_client: Transport used to send requests.
        throttle: Shared rate-limit state.
        max_retries: Maximum 429 rejections tolerated per request.
            None (default) retries forever.
        max_wait_time: Maximum seconds a request may spend stalling.
            None (default) waits as long as needed.
        request_timeout: Transport timeout in seconds.
        sleep: Sleep function taking seconds (injectable for tests).
    """

    def __init__(
        self,
        http_client: HttpClient,
        throttle: RequestThrottle,
        max_retries: int | None = None,
        max_wait_time: float | None = None,
        request_timeout: int = 30,
        sleep: Callable[[float], None] | None = None,
    ):
        assert http_client is not None, "http_client cannot be None."
        assert throttle is not None, "throttle cannot be None."
        assert max_retries is None or max_retries >= 0, "max_retries must be >= 0 or None."
        assert max_wait_time is None or max_wait_time > 0, "max_wait_time must be > 0 or None."
        assert request_timeout > 0, "request_timeout must be greater than 0."

        self.http_client = http_client
        self.throttle = throttle
        self.max_retries = max_retries
        self.max_wait_time = max_wait_time
        self.request_timeout = request_timeout
        self._sleep = sleep or time.sleep

    def execute(
        self,
        request_class: RequestClass,
        method: str,
        url: str,
        body: Any | None = None,
        decoder: Decoder[D] | None = None,
        cancel_event: threading.Event | None = None,
    ) -> ApiResponse[D]:
        """
        Send one logical request to completion.

        Args:
            request_class: READ or WRITE accounting class.
            method: HTTP method.
            url: The full URL to request.
            body: JSON-serializable request body, if any.
            decoder: Converter for the success payload (default: raw JSON value).
            cancel_event: When set while stalling, abandons the request.

        Returns:
            The decoded envelope; API errors are returned, not raised.

        Raises:
            requests.RequestException: On transport failure.
            ProtocolViolationError: On a 429 without a usable Retry-After.
            ResponseDecodeError: If the body is not a valid envelope.
            RequestThrottledError: If a hardening ceiling is hit or the request is cancelled.
        """
        execution = _Execution(request_class, method, url)
        try:
            while True:
                self._stall(execution, cancel_event)

                execution.transition_to(ExecutionState.SENDING)
                response = self.http_client.send(
                    method, url, body=body, timeout=self.request_timeout
                )

                if response.status_code == HTTP_TOO_MANY_REQUESTS:
                    self._on_rate_limited(execution, response)
                    execution.transition_to(ExecutionState.STALLING)
                    continue

                self.throttle.on_response(request_class, OK)
                result = decode_envelope(response, decoder)
                execution.transition_to(ExecutionState.DONE)
                logger.debug(
                    f"{execution} | {execution.state} | HTTP {response.status_code} "
                    f"(rejections={execution.rejections}, stalled={execution.stalled_ms}ms)"
                )
                return result
        except Exception:
            if not execution.is_terminal:
                execution.transition_to(ExecutionState.FAILED)
            raise

    def _stall(self, execution: _Execution, cancel_event: threading.Event | None) -> None:
        """Block until the throttle lets this request through (claiming its slot)."""
        while True:
            if cancel_event is not None and cancel_event.is_set():
                raise RequestCancelledError(f"Request cancelled while stalling: {execution}")

            stall_ms = self.throttle.stall_for(execution.request_class)
            if stall_ms == 0:
                return

            if self.max_wait_time is not None:
                waited = execution.stalled_ms / 1000
                if waited + stall_ms / 1000 > self.max_wait_time:
                    logger.error(
                        f"{execution} | Giving up after stalling {waited:.2f}s "
                        f"(next stall {stall_ms}ms, max_wait_time={self.max_wait_time}s)"
                    )
                    raise StallTimeoutError(waited=waited, max_wait_time=self.max_wait_time)

            execution.stalled_ms += stall_ms
            self._wait(stall_ms / 1000, execution, cancel_event)

    def _wait(self, seconds: float, execution: _Execution, cancel_event: threading.Event | None) -> None:
        # Longer stalls (e.g. huge configured windows) are re-checked by _stall().
        seconds = min(seconds, threading.TIMEOUT_MAX)
        if cancel_event is None:
            self._sleep(seconds)
        elif cancel_event.wait(seconds):
            raise RequestCancelledError(f"Request cancelled while stalling: {execution}")

    def _on_rate_limited(self, execution: _Execution, response: requests.Response) -> None:
        retry_after = parse_retry_after(response)
        self.throttle.on_response(execution.request_class, Limited(retry_after=retry_after))
        execution.rejections += 1

        logger.warning(
            f"{execution} | Rate limited (HTTP 429), cooling down for {retry_after}ms "
            f"(rejection #{execution.rejections})"
        )

        if self.max_retries is not None and execution.rejections > self.max_retries:
            logger.error(f"{execution} | Max retries ({self.max_retries}) exceeded.")
            raise RateLimitRetriesExceededError(
                rejections=execution.rejections,
                max_retries=self.max_retries,
            )
