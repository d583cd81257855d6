"""
Global configuration for the mcmapi SDK.

Convention over Configuration: call MCM.configure() at application startup
to customize defaults. If not called, sensible defaults are used.

Hierarchy of precedence (highest to lowest):
1. Options passed to client constructors
2. Values set via MCM.configure()
3. Environment variables (MCM_*) - when allow_env_override=True
4. Hardcoded defaults (in dataclass fields)

Example:
    >>> from mcmapi import MCM
    >>>
    >>> # Pre-loaded with defaults + env vars
    >>> timeout = MCM.config.http.request_timeout
    >>>
    >>> # Custom configuration
    >>> MCM.configure(
    ...     auth={"token": "y6xWrGkA..."},
    ...     rate_limit={"read_burst_limit": 10, "read_burst_window": 1000},
    ... )
"""

from __future__ import annotations

import os
from collections.abc import Callable
from dataclasses import dataclass, field, fields, replace
from typing import Any, ClassVar, Self

from mcmapi._auth import VALID_TOKEN_TYPES, TokenType

_UNLIMITED_VALUES = ("none", "null", "unlimited")


# =============================================================================
# Exceptions
# =============================================================================


class ConfigEnvVarError(ValueError):
    """Raised when an environment variable has an invalid value."""

    def __init__(
        self,
        env_var: str,
        value: str,
        expected_type: str,
        cause: Exception | None = None,
    ):
        self.env_var = env_var
        self.value = value
        self.expected_type = expected_type
        super().__init__(f"Invalid value for {env_var}: '{value}' (expected {expected_type})")
        self.__cause__ = cause


class ConfigValidationError(ValueError):
    """Raised when a configuration value fails validation."""

    def __init__(
        self,
        field: str,
        value: Any,
        message: str,
        section: str | None = None,
    ):
        self.field = field
        self.value = value
        self.section = section
        prefix = f"[{section}] " if section else ""
        super().__init__(f"{prefix}Invalid value for '{field}': {value!r}. {message}")


# =============================================================================
# Environment Variables
# =============================================================================


class EnvVars:
    """
    Reads environment variables with type conversion.

    Example:
        >>> EnvVars.get("MCM_HTTP_REQUEST_TIMEOUT", type_hint=int)
        30
        >>> EnvVars.get("UNDEFINED_VAR")
        None
    """

    @staticmethod
    def get(
        var_name: str,
        type_hint: Any = str,
        converter: Callable[[str], Any] | None = None,
    ) -> Any:
        """
        Read an environment variable with optional type conversion.

        Returns:
            The converted value, or None if env var is not set/empty.

        Raises:
            ConfigEnvVarError: If the value cannot be converted.
        """
        raw_value = os.environ.get(var_name)
        if not raw_value:
            return None

        actual_converter = converter or EnvVars._infer_converter(type_hint)
        try:
            return actual_converter(raw_value)
        except (ValueError, TypeError) as e:
            raise ConfigEnvVarError(
                env_var=var_name,
                value=raw_value,
                expected_type=type_hint.__name__ if hasattr(type_hint, "__name__") else str(type_hint),
                cause=e,
            ) from e

    @staticmethod
    def _infer_converter(type_hint: Any) -> Callable[[str], Any]:
        # Annotations are strings here (from __future__ import annotations)
        type_str = str(type_hint)

        if type_hint is int or type_str == "int":
            return int
        if type_hint is float or type_str == "float":
            return float
        if type_hint is bool or type_str == "bool":
            return lambda v: v.lower() in ("true", "1", "yes")
        return str


def _optional_number(converter: Callable[[str], Any]) -> Callable[[str], Any]:
    """Converter accepting "none"/"null"/"unlimited" as None."""
    def convert(raw: str) -> Any:
        return None if raw.lower() in _UNLIMITED_VALUES else converter(raw)
    return convert


# =============================================================================
# Base Class
# =============================================================================


@dataclass(frozen=True)
class OverridableConfig:
    """
    Base class for immutable configuration sections.

    Fields listed in `_NULLABLE_FIELDS` accept None as a real value
    ("unlimited"); for every other field a None override is ignored.

    Example:
        >>> config = HttpConfig()
        >>> config.with_overrides({"request_timeout": 60}).request_timeout
        60
    """

    _NULLABLE_FIELDS: ClassVar[frozenset[str]] = frozenset()

    def with_overrides(self, overrides: dict[str, Any]) -> Self:
        """
        Return a new instance with the given fields overridden.

        Raises:
            ValueError: If overrides contains unknown field names.
        """
        if not overrides:
            return self

        valid_fields = {f.name for f in fields(self)}
        invalid_fields = set(overrides.keys()) - valid_fields
        if invalid_fields:
            raise ValueError(
                f"Unknown config fields: {invalid_fields}. "
                f"Valid fields are: {valid_fields}"
            )

        filtered: dict[str, Any] = {}
        for name, value in overrides.items():
            if name in self._NULLABLE_FIELDS and isinstance(value, str) and value.lower() in _UNLIMITED_VALUES:
                value = None
            if value is not None or name in self._NULLABLE_FIELDS:
                filtered[name] = value
        return replace(self, **filtered) if filtered else self

    def with_env_vars(self) -> Self:
        """
        Return new instance with environment variables applied.

        Reads the env var declared in each field's metadata.

        Raises:
            ConfigEnvVarError: If an env var has an invalid value.
        """
        overrides: dict[str, Any] = {}
        for f in fields(self):
            env_var = f.metadata.get("env")
            if not env_var or not os.environ.get(env_var):
                continue
            overrides[f.name] = EnvVars.get(
                var_name=env_var,
                type_hint=f.type,
                converter=f.metadata.get("converter"),
            )
        return self.with_overrides(overrides)


# =============================================================================
# Configuration Sections
# =============================================================================


@dataclass(frozen=True)
class AuthConfig(OverridableConfig):
    """
    Authentication configuration.

    Attributes:
        token: API token sent in the Authorization header.
            Env var: MCM_AUTH_TOKEN

        token_type: "Private" or "Shared".
            Env var: MCM_AUTH_TOKEN_TYPE
    """

    token: str | None = field(default=None, metadata={"env": "MCM_AUTH_TOKEN"}, repr=False)
    token_type: TokenType = field(default="Private", metadata={"env": "MCM_AUTH_TOKEN_TYPE"})

    def has_token(self) -> bool:
        return bool(self.token)

    def validate(self) -> Self:
        if self.token is not None and self.token == "":
            raise ConfigValidationError("token", self.token, "Must not be empty string.", section="auth")
        if self.token_type not in VALID_TOKEN_TYPES:
            raise ConfigValidationError(
                "token_type", self.token_type,
                f"Must be one of: {VALID_TOKEN_TYPES}.", section="auth"
            )
        return self


@dataclass(frozen=True)
class HttpConfig(OverridableConfig):
    """
    Transport configuration.

    Attributes:
        base_url: Base API URL (with version) prepended to all endpoints.
            Env var: MCM_HTTP_BASE_URL

        request_timeout: Transport timeout in seconds.
            Env var: MCM_HTTP_REQUEST_TIMEOUT

        https_only: Reject non-https URLs.
            Env var: MCM_HTTP_HTTPS_ONLY

        max_workers: Thread-pool size for batch requests.
            Env var: MCM_HTTP_MAX_WORKERS
    """

    base_url: str = field(default="https://api.mc-market.org/v1", metadata={"env": "MCM_HTTP_BASE_URL"})
    request_timeout: int = field(default=30, metadata={"env": "MCM_HTTP_REQUEST_TIMEOUT"})
    https_only: bool = field(default=True, metadata={"env": "MCM_HTTP_HTTPS_ONLY"})
    max_workers: int = field(default=8, metadata={"env": "MCM_HTTP_MAX_WORKERS"})

    def validate(self) -> Self:
        if not (self.base_url.startswith("http://") or self.base_url.startswith("https://")):
            raise ConfigValidationError(
                "base_url", self.base_url,
                "Must start with 'http://' or 'https://'.", section="http"
            )
        if self.https_only and not self.base_url.startswith("https://"):
            raise ConfigValidationError(
                "base_url", self.base_url,
                "Must start with 'https://' when https_only is enabled.", section="http"
            )
        if self.request_timeout <= 0:
            raise ConfigValidationError(
                "request_timeout", self.request_timeout,
                "Must be greater than 0.", section="http"
            )
        if self.max_workers <= 0:
            raise ConfigValidationError(
                "max_workers", self.max_workers,
                "Must be greater than 0.", section="http"
            )
        return self


@dataclass(frozen=True)
class RateLimitConfig(OverridableConfig):
    """
    Throttling configuration.

    The server-imposed cool-down (HTTP 429 + Retry-After) is always honored.
    On top of it, each request class may enforce a short burst window and a
    longer normal window. A limit of 0 disables the window. Windows are
    expressed in milliseconds.

    Attributes:
        read_burst_limit / read_burst_window: Burst window for READ requests.
            Env vars: MCM_RATE_LIMIT_READ_BURST_LIMIT, MCM_RATE_LIMIT_READ_BURST_WINDOW

        read_normal_limit / read_normal_window: Normal window for READ requests.
            Env vars: MCM_RATE_LIMIT_READ_NORMAL_LIMIT, MCM_RATE_LIMIT_READ_NORMAL_WINDOW

        write_burst_limit / write_burst_window: Burst window for WRITE requests.
            Env vars: MCM_RATE_LIMIT_WRITE_BURST_LIMIT, MCM_RATE_LIMIT_WRITE_BURST_WINDOW

        write_normal_limit / write_normal_window: Normal window for WRITE requests.
            Env vars: MCM_RATE_LIMIT_WRITE_NORMAL_LIMIT, MCM_RATE_LIMIT_WRITE_NORMAL_WINDOW

        max_retries: Maximum 429 rejections per request. None means unbounded.
            Env var: MCM_RATE_LIMIT_MAX_RETRIES

        max_wait_time: Maximum seconds a request may stall. None means unbounded.
            Env var: MCM_RATE_LIMIT_MAX_WAIT_TIME

    Example:
        >>> from mcmapi import MCM
        >>> MCM.configure(
        ...     rate_limit={
        ...         "write_burst_limit": 1,
        ...         "write_burst_window": 1_000,
        ...         "max_wait_time": 120.0,
        ...     }
        ... )
    """

    _NULLABLE_FIELDS: ClassVar[frozenset[str]] = frozenset({"max_retries", "max_wait_time"})

    read_burst_limit: int = field(default=0, metadata={"env": "MCM_RATE_LIMIT_READ_BURST_LIMIT"})
    read_burst_window: int = field(default=1_000, metadata={"env": "MCM_RATE_LIMIT_READ_BURST_WINDOW"})
    read_normal_limit: int = field(default=0, metadata={"env": "MCM_RATE_LIMIT_READ_NORMAL_LIMIT"})
    read_normal_window: int = field(default=60_000, metadata={"env": "MCM_RATE_LIMIT_READ_NORMAL_WINDOW"})
    write_burst_limit: int = field(default=0, metadata={"env": "MCM_RATE_LIMIT_WRITE_BURST_LIMIT"})
    write_burst_window: int = field(default=1_000, metadata={"env": "MCM_RATE_LIMIT_WRITE_BURST_WINDOW"})
    write_normal_limit: int = field(default=0, metadata={"env": "MCM_RATE_LIMIT_WRITE_NORMAL_LIMIT"})
    write_normal_window: int = field(default=60_000, metadata={"env": "MCM_RATE_LIMIT_WRITE_NORMAL_WINDOW"})
    max_retries: int | None = field(
        default=None,
        metadata={"env": "MCM_RATE_LIMIT_MAX_RETRIES", "converter": _optional_number(int)},
    )
    max_wait_time: float | None = field(
        default=None,
        metadata={"env": "MCM_RATE_LIMIT_MAX_WAIT_TIME", "converter": _optional_number(float)},
    )

    def validate(self) -> Self:
        for prefix in ("read_burst", "read_normal", "write_burst", "write_normal"):
            limit = getattr(self, f"{prefix}_limit")
            window = getattr(self, f"{prefix}_window")
            if limit < 0:
                raise ConfigValidationError(
                    f"{prefix}_limit", limit,
                    "Must be >= 0 (0 disables the window).", section="rate_limit"
                )
            if window <= 0:
                raise ConfigValidationError(
                    f"{prefix}_window", window,
                    "Must be greater than 0.", section="rate_limit"
                )
        if self.max_retries is not None and self.max_retries < 0:
            raise ConfigValidationError(
                "max_retries", self.max_retries,
                "Must be >= 0 (or None for unlimited).", section="rate_limit"
            )
        if self.max_wait_time is not None and self.max_wait_time <= 0:
            raise ConfigValidationError(
                "max_wait_time", self.max_wait_time,
                "Must be greater than 0 (or None for unlimited).", section="rate_limit"
            )
        return self


@dataclass(frozen=True)
class MCMConfig:
    """
    Global configuration for the mcmapi SDK.

    Attributes:
        auth: Authentication configuration.
        http: Transport configuration.
        rate_limit: Throttling configuration.
    """

    auth: AuthConfig = field(default_factory=AuthConfig)
    http: HttpConfig = field(default_factory=HttpConfig)
    rate_limit: RateLimitConfig = field(default_factory=RateLimitConfig)

    def with_env_vars(self) -> MCMConfig:
        """Return a new config with MCM_* environment variables applied on top."""
        return MCMConfig(
            auth=self.auth.with_env_vars(),
            http=self.http.with_env_vars(),
            rate_limit=self.rate_limit.with_env_vars(),
        )

    def with_section_overrides(
        self,
        *,
        auth: dict[str, Any] | None = None,
        http: dict[str, Any] | None = None,
        rate_limit: dict[str, Any] | None = None,
    ) -> MCMConfig:
        """Return a new config with per-section overrides merged in."""
        return MCMConfig(
            auth=self.auth.with_overrides(auth or {}),
            http=self.http.with_overrides(http or {}),
            rate_limit=self.rate_limit.with_overrides(rate_limit or {}),
        )

    def validate(self) -> MCMConfig:
        self.auth.validate()
        self.http.validate()
        self.rate_limit.validate()
        return self


# =============================================================================
# Global Configuration Singleton
# =============================================================================


class _MCM:
    """
    Singleton for SDK configuration.

    Example:
        >>> from mcmapi import MCM
        >>> MCM.configure(auth={"token": "..."})
        >>> print(MCM.config.http.base_url)
    """

    def __init__(self) -> None:
        self._config: MCMConfig = MCMConfig().with_env_vars()

    def configure(
        self,
        *,
        auth: dict[str, Any] | None = None,
        http: dict[str, Any] | None = None,
        rate_limit: dict[str, Any] | None = None,
        allow_env_override: bool = True,
    ) -> MCMConfig:
        """
        Configure SDK settings.

        Args:
            auth: Authentication overrides (token, token_type).
            http: Transport overrides (base_url, request_timeout, https_only, max_workers).
            rate_limit: Throttling overrides (windows, max_retries, max_wait_time).
            allow_env_override: If True (default), env vars are used as fallback
                for fields NOT provided. If False, env vars are ignored entirely.

        Returns:
            The configured MCMConfig instance.

        Raises:
            ValueError: If any dict contains unknown field names.
            ConfigValidationError: If any config value fails validation.
        """
        base = MCMConfig()
        if allow_env_override:
            base = base.with_env_vars()

        # A rejected config never becomes active.
        config = base.with_section_overrides(
            auth=auth,
            http=http,
            rate_limit=rate_limit,
        ).validate()
        self._config = config
        return config

    @property
    def config(self) -> MCMConfig:
        return self._config

    def reset(self) -> MCMConfig:
        """Reset configuration to defaults + env vars (useful in tests)."""
        self._config = MCMConfig().with_env_vars()
        return self.validate()

    def validate(self) -> MCMConfig:
        """
        Validate current configuration.

        Raises:
            ConfigValidationError: If any config value is invalid.
        """
        return self._config.validate()

    def __repr__(self) -> str:
        return f"MCM(config={self._config!r})"


MCM: _MCM = _MCM()
MCM.validate()
