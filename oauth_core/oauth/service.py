# oauth_core/oauth/service.py
import logging
from typing import List, NoReturn, Optional

from pydantic import BaseModel, Field

from ..settings import Settings
from .client_registry import ClientRegistry
from .code_issuer import AuthorizationCodeIssuer
from .exceptions import (
    InvalidClient,
    InvalidCodeVerifier,
    InvalidGrant,
    InvalidRedirectUri,
    InvalidRequest,
    InvalidScope,
    TokenExpired,
    TokenReuseDetected,
    UnsupportedGrantType
)
from .hashing import AbstractSecretHasher, hash_token
from .models import (
    ConsentPageData,
    IntrospectionResponse,
    OAuthClient,
    OAuthClientSummary,
    RefreshTokenData,
    RegisterClientRequest,
    RegisterClientResponse,
    ScopeDisplay,
    TokenRequest,
    TokenResponse,
    UpdateOAuthClient,
    UserGrantWithClient,
    utc_now
)
from .pkce import S256, validate_pkce_code_verifier_format, verify_pkce
from .scopes import OAuthScope, join_scopes
from .storage_interfaces import AbstractTokenStore
from .token_issuer import TokenIssuer

logger = logging.getLogger(__name__)
# Refresh token reuse is reported here so alerting can attach to this logger alone
security_logger = logging.getLogger("oauth_core.security")

GRANT_TYPE_AUTHORIZATION_CODE = "authorization_code"
GRANT_TYPE_REFRESH_TOKEN = "refresh_token"
SUPPORTED_GRANT_TYPES = [GRANT_TYPE_AUTHORIZATION_CODE, GRANT_TYPE_REFRESH_TOKEN]

TOKEN_TYPE_HINT_ACCESS = "access_token"
TOKEN_TYPE_HINT_REFRESH = "refresh_token"


class OAuthConfig(BaseModel):
    """Lifetimes and defaults the OAuth service runs with."""
    authorization_code_ttl_seconds: int = Field(default=600, gt=0)
    access_token_ttl_seconds: int = Field(default=900, gt=0)
    refresh_token_ttl_seconds: int = Field(default=604800, gt=0)
    default_scope: str = OAuthScope.PROFILE.value

    @classmethod
    def from_settings(cls, app_settings: Settings) -> "OAuthConfig":
        return cls(
            authorization_code_ttl_seconds=app_settings.authorization_code_ttl_seconds,
            access_token_ttl_seconds=app_settings.access_token_ttl_seconds,
            refresh_token_ttl_seconds=app_settings.refresh_token_ttl_seconds,
            default_scope=app_settings.default_scope,
        )


def _scope_display(scope: str) -> ScopeDisplay:
    known = OAuthScope.parse(scope)
    return ScopeDisplay(name=scope, description=known.description if known else scope)


class OAuthService:
    """
    Authorization server core.

    Stateless between calls: every operation reads from the token store,
    decides, writes and returns. The atomicity the flows depend on (single
    use codes, refresh rotation, family revocation) is delegated to the store.
    """

    def __init__(
        self,
        store: AbstractTokenStore,
        hasher: AbstractSecretHasher,
        config: Optional[OAuthConfig] = None
    ):
        self.store = store
        self.config = config or OAuthConfig()
        self.clients = ClientRegistry(store, hasher)
        self.code_issuer = AuthorizationCodeIssuer(store, self.config.authorization_code_ttl_seconds)
        self.token_issuer = TokenIssuer(
            store,
            access_token_ttl_seconds=self.config.access_token_ttl_seconds,
            refresh_token_ttl_seconds=self.config.refresh_token_ttl_seconds,
        )

    # --- Client management ---

    async def register_client(self, request: RegisterClientRequest) -> RegisterClientResponse:
        return await self.clients.register(request)

    async def get_client(self, id: str) -> Optional[OAuthClientSummary]:
        return await self.clients.get(id)

    async def list_clients(self) -> List[OAuthClientSummary]:
        return await self.clients.list_clients()

    async def update_client(self, id: str, patch: UpdateOAuthClient) -> Optional[OAuthClientSummary]:
        return await self.clients.update(id, patch)

    async def regenerate_client_secret(self, id: str) -> Optional[str]:
        return await self.clients.regenerate_secret(id)

    async def revoke_client(self, id: str) -> bool:
        return await self.clients.revoke(id)

    async def find_active_client(self, client_id: str) -> Optional[OAuthClient]:
        return await self.clients.find_active(client_id)

    async def validate_client_credentials(self, client_id: str, client_secret: str) -> OAuthClient:
        return await self.clients.validate_credentials(client_id, client_secret)

    # --- Authorization ---

    async def validate_authorize_request(
        self,
        client_id: str,
        redirect_uri: str,
        requested_scopes: List[str],
        state: Optional[str],
        code_challenge: Optional[str],
        code_challenge_method: Optional[str] = None
    ) -> ConsentPageData:
        """Validate an authorization request and return what the consent page shows."""
        client = await self.clients.find_active(client_id)
        if client is None:
            logger.warning(f"Authorization request for unknown or revoked client '{client_id}'.")
            raise InvalidClient()

        if not client.is_confidential and not code_challenge:
            raise InvalidRequest("PKCE required for public clients.")

        if redirect_uri not in client.redirect_uris:
            logger.warning(f"Authorization request for client '{client_id}' with unregistered redirect_uri.")
            raise InvalidRedirectUri()

        if not requested_scopes:
            scopes = [self.config.default_scope]
        else:
            disallowed = [scope for scope in requested_scopes if scope not in client.scopes]
            if disallowed:
                raise InvalidScope(f"Scope(s) not allowed for this client: {', '.join(disallowed)}.")
            scopes = list(requested_scopes)

        if code_challenge_method is not None and code_challenge_method != S256:
            raise InvalidRequest("Only the S256 code_challenge_method is supported.")
        if code_challenge_method is not None and not code_challenge:
            raise InvalidRequest("code_challenge_method given without code_challenge.")

        return ConsentPageData(
            client_id=client.client_id,
            client_name=client.name,
            client_description=client.description,
            scopes=[_scope_display(scope) for scope in scopes],
            redirect_uri=redirect_uri,
            state=state,
            code_challenge=code_challenge,
            code_challenge_method=(code_challenge_method or S256) if code_challenge else None,
        )

    async def create_authorization_code(
        self,
        user_id: str,
        client_id: str,
        redirect_uri: str,
        scopes: List[str],
        code_challenge: Optional[str] = None,
        code_challenge_method: Optional[str] = None
    ) -> str:
        """Issue a code for an approved request. Call validate_authorize_request first."""
        return await self.code_issuer.issue(
            user_id=user_id,
            client_id=client_id,
            redirect_uri=redirect_uri,
            scopes=scopes,
            code_challenge=code_challenge,
            code_challenge_method=code_challenge_method,
        )

    # --- Token endpoint ---

    async def handle_token_request(self, token_request: TokenRequest) -> TokenResponse:
        """Dispatch a /token request on grant_type."""
        grant_type = token_request.grant_type
        logger.info(f"Handling token request with grant_type='{grant_type}' for client '{token_request.client_id}'.")

        if grant_type == GRANT_TYPE_AUTHORIZATION_CODE:
            if not token_request.code:
                raise InvalidRequest("Missing 'code' parameter.")
            if not token_request.redirect_uri:
                raise InvalidRequest("Missing 'redirect_uri' parameter.")
            return await self.exchange_code_for_tokens(
                code=token_request.code,
                redirect_uri=token_request.redirect_uri,
                code_verifier=token_request.code_verifier,
                client_id=token_request.client_id,
            )

        if grant_type == GRANT_TYPE_REFRESH_TOKEN:
            if not token_request.refresh_token:
                raise InvalidRequest("Missing 'refresh_token' parameter.")
            if not token_request.client_id:
                raise InvalidRequest("Missing 'client_id' parameter.")
            return await self.refresh_tokens(token_request.refresh_token, token_request.client_id)

        raise UnsupportedGrantType(f"Grant type '{grant_type}' is not supported.")

    async def exchange_code_for_tokens(
        self,
        code: str,
        redirect_uri: str,
        code_verifier: Optional[str] = None,
        client_id: Optional[str] = None
    ) -> TokenResponse:
        """
        Redeem an authorization code for a new token family.

        The code is consumed before anything else is checked, so a code that
        fails any later check is burned as well.
        """
        auth_code = await self.store.find_and_consume_authorization_code(hash_token(code))
        if auth_code is None:
            logger.warning("Authorization code redemption failed: code unknown, already used or expired.")
            raise InvalidGrant()

        if client_id is not None and client_id != auth_code.client_id:
            logger.warning(f"Authorization code issued to '{auth_code.client_id}' presented by '{client_id}'.")
            raise InvalidGrant()

        if redirect_uri != auth_code.redirect_uri:
            logger.warning(f"redirect_uri mismatch on code redemption for client '{auth_code.client_id}'.")
            raise InvalidRedirectUri()

        if auth_code.code_challenge:
            if not code_verifier:
                raise InvalidCodeVerifier("code_verifier is required.")
            if not validate_pkce_code_verifier_format(code_verifier):
                logger.warning(f"Malformed code_verifier presented by client '{auth_code.client_id}'.")
                raise InvalidCodeVerifier("code_verifier is malformed.")
            if not verify_pkce(code_verifier, auth_code.code_challenge, auth_code.code_challenge_method):
                logger.warning(f"PKCE verification failed for client '{auth_code.client_id}'.")
                raise InvalidCodeVerifier()

        client = await self.clients.find_active(auth_code.client_id)
        if client is None:
            raise InvalidClient()

        minted = await self.token_issuer.issue_for_new_grant(
            user_id=auth_code.user_id,
            client_id=client.client_id,
            scopes=auth_code.scopes,
            with_refresh_token=client.is_confidential,
        )
        return minted.to_response()

    async def refresh_tokens(self, refresh_token: str, client_id: str) -> TokenResponse:
        """Rotate a refresh token. Presenting a revoked one revokes its entire family."""
        token = await self.store.find_refresh_token_by_hash(hash_token(refresh_token))
        if token is None:
            logger.warning(f"Refresh attempted with unknown token by client '{client_id}'.")
            raise InvalidGrant()

        if token.client_id != client_id:
            logger.warning(f"Refresh token of client '{token.client_id}' presented by '{client_id}'.")
            raise InvalidClient()

        if token.revoked_at is not None:
            await self._handle_refresh_token_reuse(token)

        if token.expires_at <= utc_now():
            raise TokenExpired()

        client = await self.clients.find_active(client_id)
        if client is None:
            raise InvalidClient()

        minted = await self.token_issuer.rotate(token, client)
        if minted is None:
            # Lost the race against another refresh of the same token
            await self._handle_refresh_token_reuse(token)
        return minted.to_response()

    async def _handle_refresh_token_reuse(self, token: RefreshTokenData) -> NoReturn:
        revoked = await self.store.revoke_token_family(token.family_id)
        security_logger.critical(
            f"Refresh token reuse detected for client '{token.client_id}', user '{token.user_id}', "
            f"family '{token.family_id}'. Revoked {revoked} tokens in the family."
        )
        raise TokenReuseDetected(
            family_id=token.family_id,
            client_id=token.client_id,
            user_id=token.user_id,
        )

    # --- Introspection & revocation ---

    async def introspect_token(self, token: str) -> IntrospectionResponse:
        """RFC 7662 introspection. Anything other than a live token is reported as inactive only."""
        token_hash = hash_token(token)
        now = utc_now()

        access = await self.store.find_access_token_by_hash(token_hash)
        if access is not None:
            if access.revoked_at is not None or access.expires_at <= now:
                return IntrospectionResponse.inactive()
            return IntrospectionResponse(
                active=True,
                scope=join_scopes(access.scopes),
                client_id=access.client_id,
                token_type="Bearer",
                exp=int(access.expires_at.timestamp()),
                iat=int(access.created_at.timestamp()),
                sub=access.user_id,
            )

        refresh = await self.store.find_refresh_token_by_hash(token_hash)
        if refresh is not None:
            if refresh.revoked_at is not None or refresh.expires_at <= now:
                return IntrospectionResponse.inactive()
            return IntrospectionResponse(
                active=True,
                scope=join_scopes(refresh.scopes),
                client_id=refresh.client_id,
                token_type=TOKEN_TYPE_HINT_REFRESH,
                exp=int(refresh.expires_at.timestamp()),
                iat=int(refresh.created_at.timestamp()),
                sub=refresh.user_id,
            )

        return IntrospectionResponse.inactive()

    async def revoke_token(self, token: str, token_type_hint: Optional[str] = None) -> None:
        """
        RFC 7009 revocation of a single token.

        The hint only changes lookup order. Unknown tokens are not an error.
        """
        token_hash = hash_token(token)
        revokers = [
            (TOKEN_TYPE_HINT_ACCESS, self.store.revoke_access_token_by_hash),
            (TOKEN_TYPE_HINT_REFRESH, self.store.revoke_refresh_token_by_hash),
        ]
        if token_type_hint == TOKEN_TYPE_HINT_REFRESH:
            revokers.reverse()

        for token_type, revoke in revokers:
            if await revoke(token_hash):
                logger.info(f"Revoked {token_type} on request.")
                return
        logger.debug("Revocation requested for an unknown or already revoked token.")

    # --- User grants ---

    async def list_user_grants(self, user_id: str) -> List[UserGrantWithClient]:
        return await self.store.list_user_grants(user_id)

    async def revoke_user_grant(self, user_id: str, client_id: str) -> bool:
        revoked = await self.store.revoke_user_grant(user_id, client_id)
        if revoked:
            logger.info(f"User '{user_id}' revoked grant for client '{client_id}'; tokens revoked.")
        return revoked

    # --- Maintenance ---

    async def cleanup_expired(self) -> int:
        return await self.store.cleanup_expired()
