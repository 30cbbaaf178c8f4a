from __future__ import annotations

import os
from typing import Any, Dict, Optional
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .constants import (
    DEFAULT_MAX_429_RETRIES,
    DEFAULT_MAX_RETRIES,
    DEFAULT_REFRESH_IF_WITHIN_SECS,
    DEFAULT_REQUEST_TIMEOUT_MS,
    DEFAULT_RETRY_DELAY_MS,
)
from .errors import ConfigurationError


def _env_bool(name: str, default: bool) -> bool:
    v = os.getenv(name)
    if v is None:
        return default
    return v.strip().lower() in ("1", "true", "yes", "y", "on")


def _env_int(name: str, default: int, *, minimum: int = 0) -> int:
    v = (os.getenv(name) or "").strip()
    if not v:
        return default
    try:
        n = int(v)
        return n if n >= minimum else default
    except Exception:
        return default


class RetryPolicy(BaseModel):
    """
    Retry behaviour for one client, or for one request when passed per call.

    A per-request policy replaces the client policy wholesale; fields are never
    merged between the two.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    max_retries: int = Field(default=DEFAULT_MAX_RETRIES, ge=0, alias="maxRetries")
    delay_ms: int = Field(default=DEFAULT_RETRY_DELAY_MS, ge=0, alias="delayMs")
    max_429_retries: int = Field(default=DEFAULT_MAX_429_RETRIES, ge=0, alias="max429Retries")
    jitter: bool = Field(default=False)


class AkeneoConfig(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    # Auth (secret): MUST remain env/creds-driven
    endpoint: str
    username: str = Field(min_length=1)
    password: str = Field(min_length=1)
    client_id: str = Field(min_length=1, alias="clientId")
    client_secret: str = Field(min_length=1, alias="clientSecret")

    timeout_ms: int = Field(default=DEFAULT_REQUEST_TIMEOUT_MS, gt=0, alias="timeoutMs")
    retry: RetryPolicy = Field(default_factory=RetryPolicy)
    refresh_if_within_secs: int = Field(
        default=DEFAULT_REFRESH_IF_WITHIN_SECS, ge=0, alias="refreshIfWithinSecs"
    )

    @field_validator("endpoint")
    @classmethod
    def _valid_endpoint(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("must not be empty")
        parsed = urlparse(v)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError("is not a valid URL")
        return v.rstrip("/")

    @property
    def timeout_s(self) -> float:
        return self.timeout_ms / 1000.0

    @staticmethod
    def from_env_and_creds(creds: Optional[Dict[str, Any]] = None) -> "AkeneoConfig":
        """
        Build a config from a creds dict, falling back to AKENEO_* env vars.

        Creds win over env so a host application can inject rotated secrets.
        """
        creds = dict(creds or {})

        def pick(*keys: str, env: str) -> Any:
            for k in keys:
                if creds.get(k):
                    return creds[k]
            return os.getenv(env)

        retry = creds.get("retry")
        if retry is None:
            retry = {
                "max_retries": _env_int("AKENEO_MAX_RETRIES", DEFAULT_MAX_RETRIES),
                "delay_ms": _env_int("AKENEO_RETRY_DELAY_MS", DEFAULT_RETRY_DELAY_MS),
                "max_429_retries": _env_int("AKENEO_MAX_429_RETRIES", DEFAULT_MAX_429_RETRIES),
                "jitter": _env_bool("AKENEO_RETRY_JITTER", False),
            }

        return load_config(
            {
                "endpoint": pick("endpoint", "base_url", env="AKENEO_ENDPOINT"),
                "username": pick("username", env="AKENEO_USERNAME"),
                "password": pick("password", env="AKENEO_PASSWORD"),
                "client_id": pick("client_id", "clientId", env="AKENEO_CLIENT_ID"),
                "client_secret": pick("client_secret", "clientSecret", env="AKENEO_CLIENT_SECRET"),
                "timeout_ms": creds.get("timeout_ms")
                or _env_int("AKENEO_TIMEOUT_MS", DEFAULT_REQUEST_TIMEOUT_MS, minimum=1),
                "refresh_if_within_secs": creds.get("refresh_if_within_secs")
                or _env_int("AKENEO_REFRESH_IF_WITHIN_SECS", DEFAULT_REFRESH_IF_WITHIN_SECS),
                "retry": retry,
            }
        )


def _format_loc(loc: Any) -> str:
    return ".".join(str(p) for p in loc) if loc else "config"


def load_config(raw: Any) -> AkeneoConfig:
    """
    Validate a plain dict (snake_case or camelCase keys) into an AkeneoConfig.

    Every problem is reported at once, one bullet per field.
    """
    if isinstance(raw, AkeneoConfig):
        return raw
    if not raw:
        raise ConfigurationError(
            "The configuration passed to the Akeneo client is not valid:\n• The config object is missing or empty"
        )
    try:
        return AkeneoConfig.model_validate(raw)
    except ValidationError as e:
        lines = [f"• `{_format_loc(err.get('loc'))}` {err.get('msg')}" for err in e.errors()]
        raise ConfigurationError(
            "The configuration passed to the Akeneo client is not valid:\n" + "\n".join(lines)
        ) from e


def load_retry_policy(raw: Any) -> Optional[RetryPolicy]:
    if raw is None or isinstance(raw, RetryPolicy):
        return raw
    try:
        return RetryPolicy.model_validate(raw)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid retry policy: {e}") from e
