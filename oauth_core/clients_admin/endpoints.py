# oauth_core/clients_admin/endpoints.py
import logging
from fastapi import APIRouter, Depends, HTTPException, Path, Response, status
from typing import List, Annotated

from ..dependencies import get_admin_api_key, get_oauth_service
from ..oauth.exceptions import OAuthServiceError, StorageError
from ..oauth.models import (
    OAuthClientSummary,
    RegenerateSecretResponse,
    RegisterClientRequest,
    RegisterClientResponse,
    UpdateOAuthClient
)
from ..oauth.service import OAuthService
from .models import CleanupResponse

logger = logging.getLogger(__name__)

# Admin router for managing OAuth clients. Requires admin API key authentication.
oauth_clients_admin_router = APIRouter(
    prefix="/admin/oauth",
    tags=["Admin - OAuth Clients"],
    dependencies=[Depends(get_admin_api_key)]
)


def _client_not_found(id: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=f"OAuth client '{id}' not found."
    )


def _rejected(e: OAuthServiceError) -> HTTPException:
    if isinstance(e, StorageError):
        return HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Could not complete the OAuth client operation."
        )
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.description)


@oauth_clients_admin_router.post(
    "/clients",
    response_model=RegisterClientResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register a new OAuth client"
)
async def register_client(
    request: RegisterClientRequest,
    service: Annotated[OAuthService, Depends(get_oauth_service)]
):
    """
    Creates a new OAuth client.
    The client secret is only returned in this response.
    """
    logger.info(f"API: Register OAuth client '{request.name}'.")
    try:
        return await service.register_client(request)
    except OAuthServiceError as e:
        logger.warning(f"API: OAuth client registration failed for '{request.name}': {e.description}")
        raise _rejected(e)


@oauth_clients_admin_router.get(
    "/clients",
    response_model=List[OAuthClientSummary],
    summary="List all OAuth clients"
)
async def list_clients(service: Annotated[OAuthService, Depends(get_oauth_service)]):
    return await service.list_clients()


@oauth_clients_admin_router.get(
    "/clients/{id}",
    response_model=OAuthClientSummary,
    summary="Get an OAuth client"
)
async def get_client(
    id: Annotated[str, Path(description="Internal id of the client.")],
    service: Annotated[OAuthService, Depends(get_oauth_service)]
):
    client = await service.get_client(id)
    if not client:
        raise _client_not_found(id)
    return client


@oauth_clients_admin_router.patch(
    "/clients/{id}",
    response_model=OAuthClientSummary,
    summary="Update an OAuth client"
)
async def update_client(
    id: Annotated[str, Path(description="Internal id of the client.")],
    patch: UpdateOAuthClient,
    service: Annotated[OAuthService, Depends(get_oauth_service)]
):
    """Only the fields present in the body are changed."""
    try:
        client = await service.update_client(id, patch)
    except OAuthServiceError as e:
        logger.warning(f"API: OAuth client update failed for '{id}': {e.description}")
        raise _rejected(e)
    if not client:
        raise _client_not_found(id)
    return client


@oauth_clients_admin_router.post(
    "/clients/{id}/regenerate-secret",
    response_model=RegenerateSecretResponse,
    summary="Regenerate an OAuth client secret"
)
async def regenerate_client_secret(
    id: Annotated[str, Path(description="Internal id of the client.")],
    service: Annotated[OAuthService, Depends(get_oauth_service)]
):
    """The previous secret stops working immediately."""
    client = await service.get_client(id)
    if not client or client.revoked:
        raise _client_not_found(id)
    client_secret = await service.regenerate_client_secret(id)
    if client_secret is None:
        raise _client_not_found(id)
    return RegenerateSecretResponse(client_id=client.client_id, client_secret=client_secret)


@oauth_clients_admin_router.delete(
    "/clients/{id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Revoke an OAuth client"
)
async def revoke_client(
    id: Annotated[str, Path(description="Internal id of the client.")],
    service: Annotated[OAuthService, Depends(get_oauth_service)]
):
    """Soft-revokes the client together with every token issued to it."""
    if not await service.revoke_client(id):
        raise _client_not_found(id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@oauth_clients_admin_router.post(
    "/cleanup",
    response_model=CleanupResponse,
    summary="Delete expired codes and tokens"
)
async def cleanup_expired(service: Annotated[OAuthService, Depends(get_oauth_service)]):
    deleted = await service.cleanup_expired()
    return CleanupResponse(deleted=deleted)
