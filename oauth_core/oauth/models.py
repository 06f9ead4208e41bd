# oauth_core/oauth/models.py
from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime, timezone
import uuid


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def new_record_id() -> str:
    return str(uuid.uuid4())


# --- Persisted records ---

class OAuthClient(BaseModel):
    """A registered OAuth client application as stored."""
    id: str = Field(default_factory=new_record_id)
    client_id: str = Field(description="Public client identifier. Immutable once created.")
    client_secret_digest: str = Field(description="One-way hash of the client secret.")
    name: str
    description: Optional[str] = None
    redirect_uris: List[str]
    scopes: List[str]
    is_confidential: bool = True
    rotate_refresh_tokens: bool = True
    revoked: bool = False
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class AuthCodeData(BaseModel):
    """Authorization code metadata. The plaintext code is never stored."""
    code_hash: str
    user_id: str
    client_id: str
    scopes: List[str]
    redirect_uri: str
    code_challenge: Optional[str] = None
    code_challenge_method: Optional[str] = None
    expires_at: datetime
    consumed: bool = False
    created_at: datetime = Field(default_factory=utc_now)


class AccessTokenData(BaseModel):
    """Stored access token, addressed by the SHA-256 hex digest of the bearer value."""
    id: str = Field(default_factory=new_record_id)
    token_hash: str
    user_id: str
    client_id: str
    scopes: List[str]
    family_id: Optional[str] = Field(
        default=None,
        description="Refresh token family the token was minted alongside, if any."
    )
    expires_at: datetime
    revoked_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utc_now)


class RefreshTokenData(BaseModel):
    """Stored refresh token. All tokens descended from one grant share a family_id."""
    id: str = Field(default_factory=new_record_id)
    token_hash: str
    user_id: str
    client_id: str
    scopes: List[str]
    family_id: str
    expires_at: datetime
    revoked_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utc_now)


class UserGrantData(BaseModel):
    """Standing consent of one user for one client."""
    id: str = Field(default_factory=new_record_id)
    user_id: str
    client_id: str
    scopes: List[str]
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    revoked_at: Optional[datetime] = None


# --- Client administration ---

class RegisterClientRequest(BaseModel):
    name: str = Field(min_length=1, description="Display name shown on the consent page.")
    description: Optional[str] = None
    redirect_uris: List[str] = Field(description="Exact redirect URIs the client may use.")
    scopes: List[str] = Field(description="Scopes the client may request.")
    is_confidential: bool = True
    rotate_refresh_tokens: bool = True


class UpdateOAuthClient(BaseModel):
    """Partial update. Fields left as None are unchanged."""
    name: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    redirect_uris: Optional[List[str]] = None
    scopes: Optional[List[str]] = None
    rotate_refresh_tokens: Optional[bool] = None


class OAuthClientSummary(BaseModel):
    """Client view safe to return from APIs (no secret digest)."""
    id: str
    client_id: str
    name: str
    description: Optional[str] = None
    redirect_uris: List[str]
    scopes: List[str]
    is_confidential: bool
    rotate_refresh_tokens: bool
    revoked: bool
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_client(cls, client: OAuthClient) -> "OAuthClientSummary":
        return cls.model_validate(client.model_dump(exclude={"client_secret_digest"}))


class RegisterClientResponse(BaseModel):
    client_id: str
    client_secret: str = Field(description="Plaintext secret. Shown only once.")
    client: OAuthClientSummary


class RegenerateSecretResponse(BaseModel):
    client_id: str
    client_secret: str


# --- Authorization ---

class ScopeDisplay(BaseModel):
    name: str
    description: str


class ConsentPageData(BaseModel):
    """Everything a consent UI needs to ask the user for approval."""
    client_id: str
    client_name: str
    client_description: Optional[str] = None
    scopes: List[ScopeDisplay]
    redirect_uri: str
    state: Optional[str] = None
    code_challenge: Optional[str] = None
    code_challenge_method: Optional[str] = None

    @property
    def scope_names(self) -> List[str]:
        return [scope.name for scope in self.scopes]


# --- Token endpoint ---

class TokenRequest(BaseModel):
    """OAuth token request parameters for authorization code or refresh token grants."""
    grant_type: str = Field(
        description="Type of grant, 'authorization_code' or 'refresh_token'."
    )
    code: Optional[str] = Field(
        default=None,
        description="The authorization code received from the authorization server."
    )
    redirect_uri: Optional[str] = Field(
        default=None,
        description="Must match the redirect_uri of the authorization request exactly."
    )
    client_id: Optional[str] = Field(default=None, description="The client identifier.")
    code_verifier: Optional[str] = Field(default=None, description="PKCE code verifier.")
    refresh_token: Optional[str] = Field(default=None, description="The refresh token.")


class TokenResponse(BaseModel):
    """OAuth token response structure as per RFC 6749 - Section 5.1."""
    access_token: str
    token_type: str = "Bearer"
    expires_in: int
    refresh_token: Optional[str] = None
    scope: Optional[str] = None


class IntrospectionResponse(BaseModel):
    """
    RFC 7662 introspection response. Inactive tokens carry no other field.

    token_type is "Bearer" for access tokens and "refresh_token" for refresh
    tokens, which have no RFC 6749 access token type.
    """
    active: bool
    scope: Optional[str] = None
    client_id: Optional[str] = None
    token_type: Optional[str] = None
    exp: Optional[int] = None
    iat: Optional[int] = None
    sub: Optional[str] = None

    @classmethod
    def inactive(cls) -> "IntrospectionResponse":
        return cls(active=False)


# --- User grants ---

class UserGrantWithClient(BaseModel):
    id: str
    client_id: str
    client_name: str
    client_description: Optional[str] = None
    scopes: List[str]
    granted_at: datetime


# --- Discovery ---

class WellKnownOAuthMetadata(BaseModel):
    """OAuth 2.0 server metadata as defined in RFC 8414 for discovery endpoint."""
    issuer: str
    authorization_endpoint: str
    token_endpoint: str
    introspection_endpoint: Optional[str] = None
    revocation_endpoint: Optional[str] = None
    scopes_supported: Optional[List[str]] = None
    response_types_supported: List[str] = ["code"]
    grant_types_supported: List[str] = ["authorization_code", "refresh_token"]
    token_endpoint_auth_methods_supported: Optional[List[str]] = None
    code_challenge_methods_supported: List[str] = ["S256"]
