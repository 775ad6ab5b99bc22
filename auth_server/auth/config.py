"""
Auth constants - no dependencies on other auth modules.

Tunable values (secrets, lifetimes, TOTP parameters) live in config.settings;
this module only holds the fixed vocabulary shared by tokens and roles.
"""

# =============================================================================
# Reserved Token Scopes
# =============================================================================

# Sole scope of a refresh token
TOKEN_REFRESH_SCOPE = "TOKEN_REFRESH"

# Sole scope of a pending two-factor token; never granted to a real account
TWO_FACTOR_AUTHENTICATION_SCOPE = "TWO_FACTOR_AUTHENTICATION"

RESERVED_SCOPES = frozenset({TOKEN_REFRESH_SCOPE, TWO_FACTOR_AUTHENTICATION_SCOPE})

# =============================================================================
# Roles
# =============================================================================

ROLE_PREFIX = "ROLE_"

ADMIN_ROLE = "ROLE_ADMIN"

# =============================================================================
# Token Transport
# =============================================================================

TOKEN_TYPE = "bearer"

# =============================================================================
# Credential Limits
# =============================================================================

MAX_USERNAME_LENGTH = 100
MAX_PASSWORD_LENGTH = 200
MAX_EMAIL_LENGTH = 254

# Granted to self-registered accounts
DEFAULT_AUTHORITIES = ("ROLE_USER",)
