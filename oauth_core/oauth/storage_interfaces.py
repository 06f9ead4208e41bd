# oauth_core/oauth/storage_interfaces.py
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional, List

from .models import (
    OAuthClient,
    UpdateOAuthClient,
    AuthCodeData,
    AccessTokenData,
    RefreshTokenData,
    UserGrantData,
    UserGrantWithClient
)


class AbstractTokenStore(ABC):
    """
    Persistence for clients, authorization codes, tokens and user grants.

    Codes and tokens are addressed by the SHA-256 hex digest of their
    plaintext value. Implementations must make the operations documented as
    atomic behave as a single compare-and-swap under concurrent callers.
    Failures of the underlying storage are raised as StorageError.
    """

    # --- Clients ---

    @abstractmethod
    async def create_client(self, client: OAuthClient) -> OAuthClient:
        """Persist a new client. The client_id must not already exist."""
        pass

    @abstractmethod
    async def find_client_by_id(self, id: str) -> Optional[OAuthClient]:
        """Retrieve a client by internal id, revoked or not."""
        pass

    @abstractmethod
    async def find_active_client_by_client_id(self, client_id: str) -> Optional[OAuthClient]:
        """Retrieve a non-revoked client by its public client_id."""
        pass

    @abstractmethod
    async def list_clients(self) -> List[OAuthClient]:
        """List all clients, newest first."""
        pass

    @abstractmethod
    async def update_client(self, id: str, patch: UpdateOAuthClient) -> Optional[OAuthClient]:
        """Apply the non-None fields of the patch. Returns None if the client does not exist."""
        pass

    @abstractmethod
    async def update_client_secret(self, id: str, client_secret_digest: str) -> bool:
        """Replace the secret digest of an active client."""
        pass

    @abstractmethod
    async def revoke_client(self, id: str) -> bool:
        """Soft-revoke a client and every live token issued to it, atomically."""
        pass

    # --- Authorization codes ---

    @abstractmethod
    async def create_authorization_code(self, auth_code: AuthCodeData) -> None:
        """Store an authorization code."""
        pass

    @abstractmethod
    async def create_authorization_code_with_grant(self, auth_code: AuthCodeData) -> UserGrantData:
        """
        Store an authorization code and upsert the user's grant for its scopes
        in one transaction. If either write fails, neither is kept.
        """
        pass

    @abstractmethod
    async def find_and_consume_authorization_code(self, code_hash: str) -> Optional[AuthCodeData]:
        """
        Atomically mark an unconsumed, unexpired code as consumed and return it.

        Returns None when the code does not exist, was already consumed or
        has expired. Of several concurrent callers at most one gets the code.
        """
        pass

    # --- Access tokens ---

    @abstractmethod
    async def create_access_token(self, token: AccessTokenData) -> None:
        pass

    @abstractmethod
    async def find_access_token_by_hash(self, token_hash: str) -> Optional[AccessTokenData]:
        """Retrieve an access token, including revoked and expired ones."""
        pass

    @abstractmethod
    async def revoke_access_token_by_hash(self, token_hash: str) -> bool:
        """Revoke a live access token. Returns False if no live token matched."""
        pass

    # --- Refresh tokens ---

    @abstractmethod
    async def create_refresh_token(self, token: RefreshTokenData) -> None:
        pass

    @abstractmethod
    async def create_token_pair(
        self,
        access_token: AccessTokenData,
        refresh_token: Optional[RefreshTokenData]
    ) -> None:
        """Persist an access token and its optional refresh token in one transaction."""
        pass

    @abstractmethod
    async def find_refresh_token_by_hash(self, token_hash: str) -> Optional[RefreshTokenData]:
        """Retrieve a refresh token, including revoked ones, so reuse can be detected."""
        pass

    @abstractmethod
    async def revoke_refresh_token(self, id: str) -> bool:
        """Revoke a refresh token. True only if this call moved it from live to revoked."""
        pass

    @abstractmethod
    async def rotate_refresh_token(
        self,
        presented_id: str,
        access_token: AccessTokenData,
        refresh_token: RefreshTokenData
    ) -> bool:
        """
        Revoke the presented refresh token and persist its successor pair atomically.

        Returns False, persisting nothing, when the presented token was no
        longer live (a concurrent rotation won).
        """
        pass

    @abstractmethod
    async def revoke_refresh_token_by_hash(self, token_hash: str) -> bool:
        pass

    @abstractmethod
    async def revoke_token_family(self, family_id: str) -> int:
        """Revoke every live refresh and access token of a family. Returns the count revoked."""
        pass

    # --- User grants ---

    @abstractmethod
    async def upsert_user_grant(self, user_id: str, client_id: str, scopes: List[str]) -> UserGrantData:
        """
        Record standing consent for (user, client).

        An active grant gains the union of old and new scopes. A missing or
        revoked grant is replaced with exactly the new scopes.
        """
        pass

    @abstractmethod
    async def list_user_grants(self, user_id: str) -> List[UserGrantWithClient]:
        """Active grants of a user to active clients, newest first."""
        pass

    @abstractmethod
    async def revoke_user_grant(self, user_id: str, client_id: str) -> bool:
        """Revoke an active grant and every live token of the (user, client) pair, atomically."""
        pass

    # --- Maintenance ---

    @abstractmethod
    async def cleanup_expired(self) -> int:
        """Delete expired and long-revoked rows. Returns the number of rows removed."""
        pass

    @abstractmethod
    async def initialize(self) -> None:
        """Initialize the storage backend."""
        pass

    @abstractmethod
    async def teardown(self) -> None:
        """Clean up storage resources."""
        pass
