# oauth_core/oauth/client_registry.py
import asyncio
import logging
from typing import List, Optional
from urllib.parse import urlsplit

from .exceptions import InvalidClient, InvalidRequest, InvalidScope
from .hashing import AbstractSecretHasher, generate_client_id, generate_client_secret
from .models import (
    OAuthClient,
    OAuthClientSummary,
    RegisterClientRequest,
    RegisterClientResponse,
    UpdateOAuthClient
)
from .scopes import is_recognized_scope
from .storage_interfaces import AbstractTokenStore

logger = logging.getLogger(__name__)

# Verified against when the client does not exist, so an unknown client_id
# costs the same hash verification as a wrong secret.
_DUMMY_SECRET = "client-secret-placeholder-for-unknown-clients"


def validate_scopes(scopes: List[str]) -> None:
    if not scopes:
        raise InvalidRequest("At least one scope is required.")
    unknown = [scope for scope in scopes if not is_recognized_scope(scope)]
    if unknown:
        raise InvalidScope(f"Unrecognized scope(s): {', '.join(unknown)}.")


def validate_redirect_uris(redirect_uris: List[str]) -> None:
    """Redirect URIs must be absolute and carry no fragment (RFC 6749 - Section 3.1.2)."""
    if not redirect_uris:
        raise InvalidRequest("At least one redirect URI is required.")
    for uri in redirect_uris:
        parts = urlsplit(uri)
        if not parts.scheme or not parts.netloc:
            raise InvalidRequest(f"Redirect URI must be absolute: {uri}")
        if parts.fragment or "#" in uri:
            raise InvalidRequest(f"Redirect URI must not contain a fragment: {uri}")


class ClientRegistry:
    """Registers, updates and revokes OAuth clients and authenticates them."""

    def __init__(self, store: AbstractTokenStore, hasher: AbstractSecretHasher):
        self.store = store
        self.hasher = hasher
        self._dummy_digest: Optional[str] = None

    async def _hash_secret(self, secret: str) -> str:
        return await asyncio.to_thread(self.hasher.hash, secret)

    async def _verify_secret(self, secret: str, digest: str) -> bool:
        return await asyncio.to_thread(self.hasher.verify, secret, digest)

    async def register(self, request: RegisterClientRequest) -> RegisterClientResponse:
        """Create a client. The plaintext secret is returned here and never again."""
        validate_redirect_uris(request.redirect_uris)
        validate_scopes(request.scopes)

        client_id = generate_client_id()
        client_secret = generate_client_secret()
        client = OAuthClient(
            client_id=client_id,
            client_secret_digest=await self._hash_secret(client_secret),
            name=request.name,
            description=request.description,
            redirect_uris=list(request.redirect_uris),
            scopes=list(request.scopes),
            is_confidential=request.is_confidential,
            rotate_refresh_tokens=request.rotate_refresh_tokens,
        )
        await self.store.create_client(client)
        logger.info(
            f"Registered OAuth client '{client.name}' as '{client_id}' "
            f"(confidential={client.is_confidential})."
        )
        return RegisterClientResponse(
            client_id=client_id,
            client_secret=client_secret,
            client=OAuthClientSummary.from_client(client),
        )

    async def find_active(self, client_id: str) -> Optional[OAuthClient]:
        return await self.store.find_active_client_by_client_id(client_id)

    async def get(self, id: str) -> Optional[OAuthClientSummary]:
        client = await self.store.find_client_by_id(id)
        return OAuthClientSummary.from_client(client) if client else None

    async def list_clients(self) -> List[OAuthClientSummary]:
        return [OAuthClientSummary.from_client(client) for client in await self.store.list_clients()]

    async def update(self, id: str, patch: UpdateOAuthClient) -> Optional[OAuthClientSummary]:
        if patch.scopes is not None:
            validate_scopes(patch.scopes)
        if patch.redirect_uris is not None:
            validate_redirect_uris(patch.redirect_uris)
        client = await self.store.update_client(id, patch)
        if client is None:
            return None
        logger.info(f"Updated OAuth client '{client.client_id}'.")
        return OAuthClientSummary.from_client(client)

    async def regenerate_secret(self, id: str) -> Optional[str]:
        """Replace the client secret. The previous secret stops working immediately."""
        client_secret = generate_client_secret()
        digest = await self._hash_secret(client_secret)
        if not await self.store.update_client_secret(id, digest):
            return None
        logger.info(f"Regenerated secret for OAuth client id={id}.")
        return client_secret

    async def revoke(self, id: str) -> bool:
        revoked = await self.store.revoke_client(id)
        if revoked:
            logger.info(f"Revoked OAuth client id={id}.")
        return revoked

    async def validate_credentials(self, client_id: str, client_secret: str) -> OAuthClient:
        """
        Authenticate a client by secret.

        Unknown clients and wrong secrets both raise the same InvalidClient,
        after the same amount of hashing work.
        """
        client = await self.find_active(client_id)
        if client is None:
            await self._verify_secret(client_secret, await self._get_dummy_digest())
            logger.warning("Client authentication failed.")
            raise InvalidClient()

        if not await self._verify_secret(client_secret, client.client_secret_digest):
            logger.warning("Client authentication failed.")
            raise InvalidClient()
        return client

    async def _get_dummy_digest(self) -> str:
        if self._dummy_digest is None:
            self._dummy_digest = await self._hash_secret(_DUMMY_SECRET)
        return self._dummy_digest
