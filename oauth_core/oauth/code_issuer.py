# oauth_core/oauth/code_issuer.py
import logging
from datetime import timedelta
from typing import List, Optional

from .hashing import generate_token_and_hash
from .models import AuthCodeData, utc_now
from .pkce import S256
from .storage_interfaces import AbstractTokenStore

logger = logging.getLogger(__name__)


class AuthorizationCodeIssuer:
    """Turns an approved authorization request into a single-use code."""

    def __init__(self, store: AbstractTokenStore, code_ttl_seconds: int):
        self.store = store
        self.code_ttl_seconds = code_ttl_seconds

    async def issue(
        self,
        user_id: str,
        client_id: str,
        redirect_uri: str,
        scopes: List[str],
        code_challenge: Optional[str] = None,
        code_challenge_method: Optional[str] = None
    ) -> str:
        """
        Persist a new authorization code and record the user's standing consent.

        Returns the plaintext code. Only its hash is stored.
        """
        code, code_hash = generate_token_and_hash()
        auth_code = AuthCodeData(
            code_hash=code_hash,
            user_id=user_id,
            client_id=client_id,
            scopes=list(scopes),
            redirect_uri=redirect_uri,
            code_challenge=code_challenge,
            code_challenge_method=(code_challenge_method or S256) if code_challenge else None,
            expires_at=utc_now() + timedelta(seconds=self.code_ttl_seconds),
        )
        await self.store.create_authorization_code_with_grant(auth_code)

        logger.info(
            f"Issued authorization code for client '{client_id}', user '{user_id}', "
            f"scopes {scopes}, pkce={'yes' if code_challenge else 'no'}."
        )
        return code
