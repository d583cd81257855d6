"""Shared test doubles."""

from typing import Any
from unittest.mock import MagicMock

import requests


class FakeClock:
    """Millisecond clock driven explicitly by tests."""

    def __init__(self, now: int = 0):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms

    def sleep(self, seconds: float) -> None:
        self.advance(round(seconds * 1000))


def make_response(
    status_code: int,
    body: Any = None,
    headers: dict[str, str] | None = None,
    invalid_json: bool = False,
) -> MagicMock:
    """Build a mock requests.Response."""
    response = MagicMock(spec=requests.Response)
    response.status_code = status_code
    response.headers = headers or {}
    if invalid_json:
        response.json.side_effect = ValueError("Expecting value: line 1 column 1 (char 0)")
    else:
        response.json.return_value = body
    return response


def success(data: Any, status_code: int = 200) -> MagicMock:
    return make_response(status_code, {"result": "success", "data": data})


def rate_limited(retry_after: str | None = "1") -> MagicMock:
    headers = {"Retry-After": retry_after} if retry_after is not None else {}
    return make_response(429, {"result": "error", "error": {"code": "TooManyRequests", "message": "slow down"}}, headers)
