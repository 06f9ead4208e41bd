# oauth_core/dependencies.py
import logging
from fastapi import HTTPException, Request, status, Header
from typing import Optional, Annotated

from .settings import settings
from .oauth.hashing import BcryptSecretHasher
from .oauth.service import OAuthConfig, OAuthService
from .oauth.sqlite_token_store import get_sqlite_token_store

logger = logging.getLogger(__name__)

# Application-wide service instance, created on first use
_oauth_service_instance: Optional[OAuthService] = None


async def get_oauth_service() -> OAuthService:
    """Get or create the OAuth service bound to the SQLite token store."""
    global _oauth_service_instance
    if _oauth_service_instance is None:
        store = await get_sqlite_token_store()
        hasher = BcryptSecretHasher(rounds=settings.client_secret_bcrypt_rounds)
        _oauth_service_instance = OAuthService(store, hasher, OAuthConfig.from_settings(settings))
        logger.info("OAuthService initialized.")
    return _oauth_service_instance


def reset_oauth_service() -> None:
    global _oauth_service_instance
    _oauth_service_instance = None


async def get_admin_api_key(
    x_admin_api_key: Annotated[
        Optional[str],
        Header(description="The API Key for accessing admin routes.")
    ] = None
) -> str:
    """
    Validates admin API key authentication for protected admin endpoints.

    Returns the validated API key if authentication succeeds.
    """
    if not settings.admin_api_key:
        logger.critical("ADMIN_API_KEY is not configured on the server. Admin endpoints are effectively disabled.")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Admin API service is not configured properly (API Key missing on server).",
        )

    if not x_admin_api_key:
        logger.warning("Admin API: Missing X-Admin-API-Key header.")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated: X-Admin-API-Key header missing.",
            headers={"WWW-Authenticate": 'Basic realm="Admin Area"'},
        )

    if x_admin_api_key != settings.admin_api_key:
        logger.warning("Admin API: Invalid X-Admin-API-Key provided.")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Forbidden: Invalid API Key.",
            headers={"WWW-Authenticate": 'Basic realm="Admin Area"'},
        )

    return x_admin_api_key


async def get_authenticated_user_id(request: Request) -> str:
    """
    The end user on whose behalf the request is made.

    Login and sessions are handled upstream; the trusted proxy or session
    middleware in front of this service sets the configured header.
    """
    user_id = request.headers.get(settings.authenticated_user_header)
    if not user_id:
        logger.warning(f"Request to {request.url.path} without an authenticated user.")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User authentication required.",
        )
    return user_id
