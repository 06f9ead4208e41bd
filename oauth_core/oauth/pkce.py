# oauth_core/oauth/pkce.py
import secrets
import hashlib
import base64
import re
from typing import Optional

# RFC 7636 specifies length between 43 and 128 characters
CODE_VERIFIER_LENGTH = 64

# The only transformation accepted. "plain" lets anyone who observed the
# challenge forge the verifier, so it is rejected outright.
S256 = "S256"
SUPPORTED_CODE_CHALLENGE_METHODS = [S256]

_VERIFIER_PATTERN = re.compile(r"^[A-Za-z0-9\-._~]+$")


def generate_pkce_code_verifier(length: int = CODE_VERIFIER_LENGTH) -> str:
    """
    Generates a cryptographically random PKCE code verifier.
    The verifier is an unreserved string with a minimum length of 43 characters
    and a maximum length of 128 characters. (RFC 7636 - Section 4.1)
    """
    if not (43 <= length <= 128):
        raise ValueError("PKCE code verifier length must be between 43 and 128 characters.")

    # token_urlsafe expands by 4/3, so request enough bytes and truncate
    verifier = secrets.token_urlsafe(length)
    return verifier[:length]


def generate_pkce_code_challenge(code_verifier: str, method: str = S256) -> str:
    """
    Generates a PKCE code challenge from a code verifier.
    Only "S256" is supported. (RFC 7636 - Section 4.2)
    """
    if method != S256:
        raise ValueError(f"Unsupported PKCE code challenge method: {method}. Must be 'S256'.")

    hashed_verifier = hashlib.sha256(code_verifier.encode('ascii')).digest()
    return base64.urlsafe_b64encode(hashed_verifier).rstrip(b'=').decode('ascii')


def validate_pkce_code_verifier_format(code_verifier: str) -> bool:
    """
    Validates the format of a PKCE code_verifier as per RFC 7636.
    Checks length and allowed characters (A-Z, a-z, 0-9, '-', '.', '_', '~').
    """
    if not (43 <= len(code_verifier) <= 128):
        return False
    return bool(_VERIFIER_PATTERN.match(code_verifier))


def verify_pkce(code_verifier: str, code_challenge: str, method: Optional[str] = S256) -> bool:
    """
    Check a code_verifier against the stored code_challenge.

    A missing method is read as S256. Any other method, "plain" included,
    never verifies.
    """
    if (method or S256) != S256:
        return False
    if not code_verifier or not code_challenge:
        return False
    try:
        expected = generate_pkce_code_challenge(code_verifier, S256)
    except UnicodeEncodeError:
        return False
    return secrets.compare_digest(expected.encode("ascii"), code_challenge.encode("utf-8"))
