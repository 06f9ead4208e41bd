# oauth_core/oauth/__init__.py
# OAuth 2.0 Authorization Server core
# HTTP routers live in .endpoints and are mounted by oauth_core.main

# Core OAuth models and data structures
from .models import (
    OAuthClient,
    OAuthClientSummary,
    RegisterClientRequest,
    RegisterClientResponse,
    UpdateOAuthClient,
    AuthCodeData,
    AccessTokenData,
    RefreshTokenData,
    UserGrantData,
    UserGrantWithClient,
    ConsentPageData,
    ScopeDisplay,
    TokenRequest,
    TokenResponse,
    IntrospectionResponse,
    WellKnownOAuthMetadata
)

from .scopes import OAuthScope, parse_scope_string

# Domain errors raised by the service
from .exceptions import (
    OAuthServiceError,
    InvalidRequest,
    InvalidClient,
    InvalidRedirectUri,
    InvalidScope,
    InvalidGrant,
    InvalidCodeVerifier,
    TokenExpired,
    TokenRevoked,
    TokenReuseDetected,
    UnsupportedGrantType,
    StorageError,
    InternalError
)

# RFC 6749 HTTP errors and the domain -> HTTP mapping
from .errors import (
    OAuthError,
    InvalidRequestError,
    InvalidClientError,
    InvalidGrantError,
    UnsupportedGrantTypeError,
    InvalidScopeError,
    ServerError,
    ERROR_MAPPING,
    to_oauth_error
)

# PKCE (Proof Key for Code Exchange), S256 only
from .pkce import (
    generate_pkce_code_verifier,
    generate_pkce_code_challenge,
    validate_pkce_code_verifier_format,
    verify_pkce
)

from .hashing import AbstractSecretHasher, BcryptSecretHasher, hash_token

# Storage
from .storage_interfaces import AbstractTokenStore
from .sqlite_token_store import SQLiteTokenStore, get_sqlite_token_store

# Service components
from .client_registry import ClientRegistry
from .code_issuer import AuthorizationCodeIssuer
from .token_issuer import TokenIssuer
from .service import OAuthService, OAuthConfig

__all__ = [
    # Models
    "OAuthClient",
    "OAuthClientSummary",
    "RegisterClientRequest",
    "RegisterClientResponse",
    "UpdateOAuthClient",
    "AuthCodeData",
    "AccessTokenData",
    "RefreshTokenData",
    "UserGrantData",
    "UserGrantWithClient",
    "ConsentPageData",
    "ScopeDisplay",
    "TokenRequest",
    "TokenResponse",
    "IntrospectionResponse",
    "WellKnownOAuthMetadata",
    "OAuthScope",
    "parse_scope_string",

    # Domain errors
    "OAuthServiceError",
    "InvalidRequest",
    "InvalidClient",
    "InvalidRedirectUri",
    "InvalidScope",
    "InvalidGrant",
    "InvalidCodeVerifier",
    "TokenExpired",
    "TokenRevoked",
    "TokenReuseDetected",
    "UnsupportedGrantType",
    "StorageError",
    "InternalError",

    # HTTP errors
    "OAuthError",
    "InvalidRequestError",
    "InvalidClientError",
    "InvalidGrantError",
    "UnsupportedGrantTypeError",
    "InvalidScopeError",
    "ServerError",
    "ERROR_MAPPING",
    "to_oauth_error",

    # PKCE
    "generate_pkce_code_verifier",
    "generate_pkce_code_challenge",
    "validate_pkce_code_verifier_format",
    "verify_pkce",

    # Hashing
    "AbstractSecretHasher",
    "BcryptSecretHasher",
    "hash_token",

    # Storage
    "AbstractTokenStore",
    "SQLiteTokenStore",
    "get_sqlite_token_store",

    # Service
    "ClientRegistry",
    "AuthorizationCodeIssuer",
    "TokenIssuer",
    "OAuthService",
    "OAuthConfig",
]
