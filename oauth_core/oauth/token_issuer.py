# oauth_core/oauth/token_issuer.py
import logging
import uuid
from datetime import timedelta
from typing import List, Optional

from pydantic import BaseModel

from .hashing import generate_token_and_hash
from .models import (
    AccessTokenData,
    OAuthClient,
    RefreshTokenData,
    TokenResponse,
    utc_now
)
from .scopes import join_scopes
from .storage_interfaces import AbstractTokenStore

logger = logging.getLogger(__name__)


def new_family_id() -> str:
    return str(uuid.uuid4())


class MintedTokens(BaseModel):
    """Plaintext credentials handed to the client plus the records that were stored."""
    access_token: str
    refresh_token: Optional[str] = None
    access_record: AccessTokenData
    refresh_record: Optional[RefreshTokenData] = None
    expires_in: int

    def to_response(self) -> TokenResponse:
        return TokenResponse(
            access_token=self.access_token,
            token_type="Bearer",
            expires_in=self.expires_in,
            refresh_token=self.refresh_token,
            scope=join_scopes(self.access_record.scopes),
        )


class TokenIssuer:
    """Mints access/refresh pairs and manages refresh token families."""

    def __init__(
        self,
        store: AbstractTokenStore,
        access_token_ttl_seconds: int,
        refresh_token_ttl_seconds: int
    ):
        self.store = store
        self.access_token_ttl_seconds = access_token_ttl_seconds
        self.refresh_token_ttl_seconds = refresh_token_ttl_seconds

    def _build_pair(
        self,
        user_id: str,
        client_id: str,
        scopes: List[str],
        family_id: str,
        with_refresh_token: bool
    ) -> MintedTokens:
        now = utc_now()
        access_token, access_hash = generate_token_and_hash()
        access_record = AccessTokenData(
            token_hash=access_hash,
            user_id=user_id,
            client_id=client_id,
            scopes=list(scopes),
            family_id=family_id,
            expires_at=now + timedelta(seconds=self.access_token_ttl_seconds),
            created_at=now,
        )

        refresh_token = None
        refresh_record = None
        if with_refresh_token:
            refresh_token, refresh_hash = generate_token_and_hash()
            refresh_record = RefreshTokenData(
                token_hash=refresh_hash,
                user_id=user_id,
                client_id=client_id,
                scopes=list(scopes),
                family_id=family_id,
                expires_at=now + timedelta(seconds=self.refresh_token_ttl_seconds),
                created_at=now,
            )

        return MintedTokens(
            access_token=access_token,
            refresh_token=refresh_token,
            access_record=access_record,
            refresh_record=refresh_record,
            expires_in=self.access_token_ttl_seconds,
        )

    async def issue_for_new_grant(
        self,
        user_id: str,
        client_id: str,
        scopes: List[str],
        with_refresh_token: bool
    ) -> MintedTokens:
        """Mint the first pair of a brand-new family."""
        minted = self._build_pair(user_id, client_id, scopes, new_family_id(), with_refresh_token)
        await self.store.create_token_pair(minted.access_record, minted.refresh_record)
        logger.info(
            f"Issued tokens for client '{client_id}', user '{user_id}' "
            f"(family={minted.access_record.family_id}, refresh={'yes' if with_refresh_token else 'no'})."
        )
        return minted

    async def rotate(self, presented: RefreshTokenData, client: OAuthClient) -> Optional[MintedTokens]:
        """
        Revoke the presented refresh token and mint its successor.

        The successor stays in the same family when the client rotates
        refresh tokens, otherwise it roots a new family. Returns None if the
        presented token was revoked concurrently.
        """
        family_id = presented.family_id if client.rotate_refresh_tokens else new_family_id()
        minted = self._build_pair(
            presented.user_id,
            presented.client_id,
            presented.scopes,
            family_id,
            with_refresh_token=True,
        )
        rotated = await self.store.rotate_refresh_token(
            presented.id, minted.access_record, minted.refresh_record
        )
        if not rotated:
            return None
        logger.info(
            f"Rotated refresh token for client '{presented.client_id}', user '{presented.user_id}' "
            f"(family={family_id})."
        )
        return minted
