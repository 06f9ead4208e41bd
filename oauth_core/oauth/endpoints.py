# oauth_core/oauth/endpoints.py
import base64
import binascii
import logging
from typing import Annotated, Dict, List, Optional, Tuple
from urllib.parse import urlencode, urlsplit, urlunsplit, unquote_plus

from fastapi import APIRouter, Depends, Form, HTTPException, Path, Query, Request, Response, status
from fastapi.responses import RedirectResponse

from ..dependencies import get_authenticated_user_id, get_oauth_service
from ..settings import settings
from .errors import InvalidRequestError, OAuthError, ServerError, to_oauth_error
from .exceptions import InvalidClient, InvalidRequest, OAuthServiceError
from .models import (
    ConsentPageData,
    IntrospectionResponse,
    OAuthClient,
    TokenRequest,
    TokenResponse,
    UserGrantWithClient,
    WellKnownOAuthMetadata
)
from .pkce import SUPPORTED_CODE_CHALLENGE_METHODS
from .scopes import RECOGNIZED_SCOPES, parse_scope_string
from .service import OAuthService, SUPPORTED_GRANT_TYPES

logger = logging.getLogger(__name__)
oauth_router = APIRouter(prefix="/oauth", tags=["OAuth"])
well_known_router = APIRouter(tags=["OAuth Discovery"])

CONSENT_APPROVE = "approve"
CONSENT_DENY = "deny"


# --- Helpers ---

def _to_http_error(exc: OAuthServiceError, context: str) -> OAuthError:
    logger.warning(f"{context} failed: {type(exc).__name__}: {exc.description}")
    return to_oauth_error(exc)


def _build_redirect_uri(redirect_uri: str, params: Dict[str, Optional[str]]) -> str:
    """Append query parameters to a registered redirect URI, keeping its own query."""
    scheme, netloc, path, query, fragment = urlsplit(redirect_uri)
    extra = urlencode({k: v for k, v in params.items() if v is not None})
    query = f"{query}&{extra}" if query else extra
    return urlunsplit((scheme, netloc, path, query, fragment))


def _parse_basic_auth(request: Request) -> Optional[Tuple[str, str]]:
    """Client credentials from an HTTP Basic header (RFC 6749 - Section 2.3.1)."""
    header = request.headers.get("Authorization")
    if not header:
        return None
    scheme, _, value = header.partition(" ")
    if scheme.lower() != "basic":
        return None
    try:
        decoded = base64.b64decode(value.strip(), validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        raise InvalidClient()
    client_id, separator, client_secret = decoded.partition(":")
    if not separator:
        raise InvalidClient()
    return unquote_plus(client_id), unquote_plus(client_secret)


def _resolve_client_credentials(
    request: Request,
    form_client_id: Optional[str],
    form_client_secret: Optional[str]
) -> Tuple[Optional[str], Optional[str]]:
    basic = _parse_basic_auth(request)
    if basic is None:
        return form_client_id, form_client_secret

    basic_client_id, basic_client_secret = basic
    if form_client_secret is not None:
        raise InvalidRequest("Multiple client authentication methods used.")
    if form_client_id is not None and form_client_id != basic_client_id:
        raise InvalidRequest("client_id does not match the authenticated client.")
    return basic_client_id, basic_client_secret


async def _authenticate_token_client(
    service: OAuthService,
    client_id: Optional[str],
    client_secret: Optional[str]
) -> OAuthClient:
    """Confidential clients must present their secret; public clients only identify themselves."""
    if not client_id:
        raise InvalidClient()
    if client_secret is not None:
        return await service.validate_client_credentials(client_id, client_secret)
    client = await service.find_active_client(client_id)
    if client is None or client.is_confidential:
        raise InvalidClient()
    return client


def _require_authorization_params(
    response_type: Optional[str],
    client_id: Optional[str],
    redirect_uri: Optional[str]
) -> None:
    if response_type != "code":
        raise InvalidRequestError(error_description="response_type must be 'code'.")
    if not client_id or not redirect_uri:
        raise InvalidRequestError(error_description="client_id and redirect_uri are required.")


# --- Authorization endpoint ---

@oauth_router.get("/authorize", response_model=ConsentPageData, name="oauth_authorize_get")
async def authorize_get(
    user_id: Annotated[str, Depends(get_authenticated_user_id)],
    service: Annotated[OAuthService, Depends(get_oauth_service)],
    response_type: Annotated[Optional[str], Query()] = None,
    client_id: Annotated[Optional[str], Query()] = None,
    redirect_uri: Annotated[Optional[str], Query()] = None,
    scope: Annotated[Optional[str], Query()] = None,
    state: Annotated[Optional[str], Query()] = None,
    code_challenge: Annotated[Optional[str], Query()] = None,
    code_challenge_method: Annotated[Optional[str], Query()] = None
):
    """Validate an authorization request and return the data for the consent page."""
    _require_authorization_params(response_type, client_id, redirect_uri)
    logger.info(f"Authorization request from user '{user_id}' for client '{client_id}'.")
    try:
        return await service.validate_authorize_request(
            client_id=client_id,
            redirect_uri=redirect_uri,
            requested_scopes=parse_scope_string(scope),
            state=state,
            code_challenge=code_challenge,
            code_challenge_method=code_challenge_method,
        )
    except OAuthServiceError as e:
        raise _to_http_error(e, "Authorization request") from e


@oauth_router.post("/authorize", response_class=RedirectResponse, name="oauth_authorize_post")
async def authorize_post(
    user_id: Annotated[str, Depends(get_authenticated_user_id)],
    service: Annotated[OAuthService, Depends(get_oauth_service)],
    consent: Annotated[Optional[str], Form()] = None,
    response_type: Annotated[Optional[str], Form()] = None,
    client_id: Annotated[Optional[str], Form()] = None,
    redirect_uri: Annotated[Optional[str], Form()] = None,
    scope: Annotated[Optional[str], Form()] = None,
    state: Annotated[Optional[str], Form()] = None,
    code_challenge: Annotated[Optional[str], Form()] = None,
    code_challenge_method: Annotated[Optional[str], Form()] = None
):
    """
    Consent form submission.

    The request is validated again before anything is issued. Errors found
    before the redirect URI is trusted are returned directly, never redirected.
    """
    _require_authorization_params(response_type, client_id, redirect_uri)
    try:
        consent_data = await service.validate_authorize_request(
            client_id=client_id,
            redirect_uri=redirect_uri,
            requested_scopes=parse_scope_string(scope),
            state=state,
            code_challenge=code_challenge,
            code_challenge_method=code_challenge_method,
        )
    except OAuthServiceError as e:
        raise _to_http_error(e, "Authorization consent") from e

    if consent == CONSENT_DENY:
        logger.info(f"User '{user_id}' denied authorization for client '{client_id}'.")
        denied_uri = _build_redirect_uri(consent_data.redirect_uri, {
            "error": "access_denied",
            "error_description": "The user denied the authorization request.",
            "state": state,
        })
        return RedirectResponse(url=denied_uri, status_code=status.HTTP_302_FOUND)

    if consent != CONSENT_APPROVE:
        raise InvalidRequestError(error_description="consent must be 'approve' or 'deny'.")

    try:
        code = await service.create_authorization_code(
            user_id=user_id,
            client_id=consent_data.client_id,
            redirect_uri=consent_data.redirect_uri,
            scopes=consent_data.scope_names,
            code_challenge=consent_data.code_challenge,
            code_challenge_method=consent_data.code_challenge_method,
        )
    except OAuthServiceError as e:
        raise _to_http_error(e, "Authorization code issuance") from e

    logger.info(f"User '{user_id}' approved client '{client_id}'; redirecting with code.")
    return RedirectResponse(
        url=_build_redirect_uri(consent_data.redirect_uri, {"code": code, "state": state}),
        status_code=status.HTTP_302_FOUND,
    )


# --- Token endpoint ---

@oauth_router.post(
    "/token",
    response_model=TokenResponse,
    response_model_exclude_none=True,
    name="oauth_token"
)
async def token(
    request: Request,
    response: Response,
    service: Annotated[OAuthService, Depends(get_oauth_service)],
    grant_type: Annotated[Optional[str], Form()] = None,
    code: Annotated[Optional[str], Form()] = None,
    redirect_uri: Annotated[Optional[str], Form()] = None,
    client_id: Annotated[Optional[str], Form()] = None,
    client_secret: Annotated[Optional[str], Form()] = None,
    code_verifier: Annotated[Optional[str], Form()] = None,
    refresh_token: Annotated[Optional[str], Form()] = None,
):
    """OAuth token endpoint for exchanging authorization codes and refreshing tokens."""
    # RFC 6749 - Section 5.1
    response.headers["Cache-Control"] = "no-store"
    response.headers["Pragma"] = "no-cache"

    if not grant_type:
        raise InvalidRequestError(error_description="Missing 'grant_type' parameter.")

    try:
        resolved_client_id, resolved_secret = _resolve_client_credentials(request, client_id, client_secret)
        client = await _authenticate_token_client(service, resolved_client_id, resolved_secret)
        token_request = TokenRequest(
            grant_type=grant_type,
            code=code,
            redirect_uri=redirect_uri,
            client_id=client.client_id,
            code_verifier=code_verifier,
            refresh_token=refresh_token,
        )
        return await service.handle_token_request(token_request)
    except OAuthServiceError as e:
        raise _to_http_error(e, "Token request") from e
    except OAuthError:
        raise
    except Exception as e:
        logger.error(f"Unexpected error during /token: {e}", exc_info=True)
        raise ServerError(error_description="An unexpected error occurred while processing the token request.")


# --- Introspection & revocation ---

@oauth_router.post(
    "/introspect",
    response_model=IntrospectionResponse,
    response_model_exclude_none=True,
    name="oauth_introspect"
)
async def introspect(
    request: Request,
    service: Annotated[OAuthService, Depends(get_oauth_service)],
    token: Annotated[Optional[str], Form()] = None,
    token_type_hint: Annotated[Optional[str], Form()] = None,
    client_id: Annotated[Optional[str], Form()] = None,
    client_secret: Annotated[Optional[str], Form()] = None,
):
    """RFC 7662 token introspection. Callers must authenticate as a registered client."""
    try:
        resolved_client_id, resolved_secret = _resolve_client_credentials(request, client_id, client_secret)
        if not resolved_client_id or resolved_secret is None:
            raise InvalidClient()
        await service.validate_client_credentials(resolved_client_id, resolved_secret)
        if not token:
            raise InvalidRequest("Missing 'token' parameter.")
        return await service.introspect_token(token)
    except OAuthServiceError as e:
        raise _to_http_error(e, "Token introspection") from e


@oauth_router.post("/revoke", name="oauth_revoke")
async def revoke(
    service: Annotated[OAuthService, Depends(get_oauth_service)],
    token: Annotated[Optional[str], Form()] = None,
    token_type_hint: Annotated[Optional[str], Form()] = None,
):
    """RFC 7009 revocation. Unknown and already revoked tokens still succeed."""
    if not token:
        raise InvalidRequestError(error_description="Missing 'token' parameter.")
    try:
        await service.revoke_token(token, token_type_hint)
    except OAuthServiceError as e:
        raise _to_http_error(e, "Token revocation") from e
    return Response(status_code=status.HTTP_200_OK)


# --- User grants ---

@oauth_router.get("/grants", response_model=List[UserGrantWithClient], name="oauth_list_grants")
async def list_grants(
    user_id: Annotated[str, Depends(get_authenticated_user_id)],
    service: Annotated[OAuthService, Depends(get_oauth_service)],
):
    """Apps the current user has authorized."""
    return await service.list_user_grants(user_id)


@oauth_router.delete(
    "/grants/{client_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    name="oauth_revoke_grant"
)
async def revoke_grant(
    client_id: Annotated[str, Path(description="The client to disconnect.")],
    user_id: Annotated[str, Depends(get_authenticated_user_id)],
    service: Annotated[OAuthService, Depends(get_oauth_service)],
):
    """Disconnect an app: revokes the grant and every token it holds for this user."""
    if not await service.revoke_user_grant(user_id, client_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No active grant for client '{client_id}'."
        )
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# --- Discovery ---

@well_known_router.get(
    "/.well-known/oauth-authorization-server",
    response_model=WellKnownOAuthMetadata,
    response_model_exclude_none=True,
    name="oauth_metadata"
)
async def get_oauth_metadata(request: Request):
    """OAuth discovery endpoint providing server metadata (RFC 8414)."""
    base_url = (settings.issuer_url or str(request.base_url)).rstrip('/')

    def endpoint_url(route_name: str) -> str:
        return f"{base_url}{request.app.url_path_for(route_name)}"

    return WellKnownOAuthMetadata(
        issuer=base_url,
        authorization_endpoint=endpoint_url("oauth_authorize_get"),
        token_endpoint=endpoint_url("oauth_token"),
        introspection_endpoint=endpoint_url("oauth_introspect"),
        revocation_endpoint=endpoint_url("oauth_revoke"),
        scopes_supported=sorted(RECOGNIZED_SCOPES),
        response_types_supported=["code"],
        grant_types_supported=SUPPORTED_GRANT_TYPES,
        code_challenge_methods_supported=SUPPORTED_CODE_CHALLENGE_METHODS,
        token_endpoint_auth_methods_supported=["client_secret_basic", "client_secret_post", "none"],
    )
