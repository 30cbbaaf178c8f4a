# catalog_connectors/akeneo/constants.py
from __future__ import annotations

_CONNECTOR_NAME = "akeneo"

# Path prefixes appended to the configured endpoint
OAUTH_PATH = "/api/oauth/v1"
TOKEN_PATH = "/token"
REST_PATH = "/api/rest/v1"

GRANT_TYPE_PASSWORD = "password"

# Per-exchange timeout unless the config overrides it
DEFAULT_REQUEST_TIMEOUT_MS = 5000

# Refresh the grant when it expires within this many seconds
DEFAULT_REFRESH_IF_WITHIN_SECS = 1800

# Retry defaults: no retries at all, except for 429s
DEFAULT_MAX_RETRIES = 0
DEFAULT_RETRY_DELAY_MS = 0
DEFAULT_MAX_429_RETRIES = 5

# Used when a 429 has no (parseable) Retry-After header
DEFAULT_429_DELAY_MS = 5000

RETRYABLE_STATUS_CODES = frozenset({500, 501, 502, 503, 504})
TOO_MANY_REQUESTS = 429

# Exponent cap for the retry backoff; keeps huge attempt numbers finite
MAX_BACKOFF_EXPONENT = 62

# Connection pool sizing for the owned httpx client
DEFAULT_MAX_CONNECTIONS = 32
DEFAULT_MAX_KEEPALIVE_CONNECTIONS = 10

MASK = "********"

SENSITIVE_HEADERS = frozenset({"authorization", "proxy-authorization", "cookie", "set-cookie"})
SENSITIVE_INPUT_KEYS = frozenset(
    {
        "password",
        "client_secret",
        "clientsecret",
        "secret",
        "access_token",
        "refresh_token",
        "token",
        "api_key",
    }
)
