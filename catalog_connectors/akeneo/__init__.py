"""
Akeneo PIM connector package.

Why:
- Callers only need the client, the config model and the error taxonomy;
  re-exporting them here keeps imports short:
    from catalog_connectors.akeneo import AkeneoClient, AkeneoError
"""

from __future__ import annotations

from .auth import AuthApi, Grant, TokenCache
from .client import AkeneoClient
from .config import AkeneoConfig, RetryPolicy, load_config
from .errors import (
    AkeneoError,
    ClientError,
    ConfigurationError,
    CredentialExchangeError,
    RateLimitError,
    ServerError,
    TransportError,
)
from .http import RequestDescriptor, RequestExecutor

__all__ = [
    "AkeneoClient",
    "AkeneoConfig",
    "AkeneoError",
    "AuthApi",
    "ClientError",
    "ConfigurationError",
    "CredentialExchangeError",
    "Grant",
    "RateLimitError",
    "RequestDescriptor",
    "RequestExecutor",
    "RetryPolicy",
    "ServerError",
    "TokenCache",
    "TransportError",
    "load_config",
]
