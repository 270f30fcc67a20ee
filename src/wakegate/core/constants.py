"""Application-wide constants.

This module defines constants used throughout the application
to avoid magic numbers and ensure consistency.
"""

# Secret key requirements
MIN_SECRET_KEY_LENGTH = 32
DEFAULT_INSECURE_SECRET = "change-me-in-production"

# Token settings
ACCESS_TOKEN_JTI_LENGTH = 32
REVOKED_TOKEN_PREFIX = "jwt:revoked:"
DEFAULT_PLAN = "free"

# Headers
USER_ID_HEADER = "X-User-ID"
USER_CONTAINER_HEADER = "X-User-Container"
WAKE_REQUIRED_HEADER = "X-Wake-Required"
REFRESHED_TOKEN_HEADER = "X-Refreshed-Token"
ADMIN_TOKEN_HEADER = "X-Admin-Token"
REQUEST_ID_HEADER = "X-Request-ID"

# Headers that apply to a single connection and must not be forwarded
HOP_BY_HOP_HEADERS = frozenset(
    {
        "connection",
        "keep-alive",
        "proxy-authenticate",
        "proxy-authorization",
        "te",
        "trailers",
        "transfer-encoding",
        "upgrade",
    }
)

# Tenant resource naming
TENANT_NAME_PREFIX = "app__"
TENANT_NAME_HASH_LENGTH = 12
NETWORK_PREFIX = "net__"
VOLUME_PREFIX = "vol__"
TENANT_LABEL = "wakegate.tenant"

# Runtime operations
CONTAINER_STOP_TIMEOUT_SECONDS = 10
RUNTIME_LOG_TAIL_LINES = 1000
HEALTH_CHECK_TIMEOUT_SECONDS = 1.0
HEALTH_PATH = "/health"

# Redis keys
TENANT_KEY_PREFIX = "wakegate:tenant:"
TENANT_INDEX_KEY = "wakegate:tenants"
REGISTRY_CAS_MAX_RETRIES = 5
