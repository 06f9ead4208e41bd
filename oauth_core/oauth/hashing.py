# oauth_core/oauth/hashing.py
import base64
import hashlib
import logging
import secrets
from abc import ABC, abstractmethod
from typing import Tuple

import bcrypt

logger = logging.getLogger(__name__)

# Bytes of entropy for each generated credential
OPAQUE_TOKEN_BYTES = 32
CLIENT_ID_BYTES = 16
CLIENT_SECRET_BYTES = 32

# bcrypt only considers the first 72 bytes of its input
BCRYPT_MAX_INPUT_BYTES = 72


class AbstractSecretHasher(ABC):
    """One-way hashing for client secrets."""

    @abstractmethod
    def hash(self, plaintext: str) -> str:
        """Return a salted digest of the plaintext secret."""
        pass

    @abstractmethod
    def verify(self, plaintext: str, digest: str) -> bool:
        """Return True only if the plaintext matches the digest. Never raises for bad digests."""
        pass


class BcryptSecretHasher(AbstractSecretHasher):
    """bcrypt-backed hasher. Verification cost is constant for a given rounds setting."""

    def __init__(self, rounds: int = 12):
        self.rounds = rounds

    def hash(self, plaintext: str) -> str:
        secret_bytes = plaintext.encode('utf-8')[:BCRYPT_MAX_INPUT_BYTES]
        salt = bcrypt.gensalt(rounds=self.rounds)
        return bcrypt.hashpw(secret_bytes, salt).decode('utf-8')

    def verify(self, plaintext: str, digest: str) -> bool:
        if not digest:
            return False
        secret_bytes = plaintext.encode('utf-8')[:BCRYPT_MAX_INPUT_BYTES]
        try:
            return bcrypt.checkpw(secret_bytes, digest.encode('utf-8'))
        except ValueError as e:
            logger.warning(f"Stored client secret digest could not be parsed: {type(e).__name__}")
            return False


def hash_token(token: str) -> str:
    """
    SHA-256 hex digest used to address codes and tokens in storage.

    Raw values are never stored; only their hashes are persisted.
    """
    return hashlib.sha256(token.encode('utf-8')).hexdigest()


def generate_opaque_token() -> str:
    """Random URL-safe bearer value (authorization codes, access and refresh tokens)."""
    return secrets.token_urlsafe(OPAQUE_TOKEN_BYTES)


def generate_token_and_hash() -> Tuple[str, str]:
    """Generate an opaque token and return it together with its storage hash."""
    token = generate_opaque_token()
    return token, hash_token(token)


def _b64url_random(num_bytes: int) -> str:
    return base64.urlsafe_b64encode(secrets.token_bytes(num_bytes)).rstrip(b'=').decode('ascii')


def generate_client_id() -> str:
    return _b64url_random(CLIENT_ID_BYTES)


def generate_client_secret() -> str:
    return _b64url_random(CLIENT_SECRET_BYTES)
