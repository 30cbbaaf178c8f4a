from __future__ import annotations

import json
from typing import Any, Dict, Optional

from .constants import RETRYABLE_STATUS_CODES, TOO_MANY_REQUESTS


class AkeneoError(Exception):
    """
    Base error for everything raised by the Akeneo connector.

    - message: human readable summary
    - data: masked diagnostic snapshot (request/response), safe to log
    - status: HTTP status code when a response was received
    """

    is_akeneo_error = True

    def __init__(self, message: str, data: Any = None, status: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.data = data
        self.status = status

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {}
        if self.status is not None:
            out["status"] = self.status
        out["message"] = self.message
        out["data"] = self.data
        out["isAkeneoError"] = True
        return out

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str)


class ConfigurationError(AkeneoError):
    """Invalid or missing configuration. Raised before any network activity."""


class TransportError(AkeneoError):
    """No response was received (DNS, connect, timeout, reset)."""


class ServerError(AkeneoError):
    """5xx response that survived the retry budget."""


class RateLimitError(AkeneoError):
    def __init__(
        self,
        message: str,
        data: Any = None,
        status: Optional[int] = TOO_MANY_REQUESTS,
        retry_after_ms: Optional[int] = None,
    ):
        super().__init__(message, data, status)
        self.retry_after_ms = retry_after_ms


class ClientError(AkeneoError):
    """Non-retryable response status (4xx other than 429)."""


class CredentialExchangeError(AkeneoError):
    """The token endpoint could not be reached or rejected the credentials."""


def error_class_for_status(status: Optional[int]) -> type:
    if status is None:
        return TransportError
    if status == TOO_MANY_REQUESTS:
        return RateLimitError
    if status in RETRYABLE_STATUS_CODES or status >= 500:
        return ServerError
    return ClientError
