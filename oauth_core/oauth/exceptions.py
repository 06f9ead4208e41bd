# oauth_core/oauth/exceptions.py
"""
Domain errors raised by the authorization server core.

These are transport-agnostic. The HTTP layer translates them into RFC 6749
error responses through the table in ``errors.py``; the richer taxonomy here
is kept for logging and alerting.
"""
from typing import Optional


class OAuthServiceError(Exception):
    """Base class for every error the OAuth service raises."""

    default_description = "OAuth request failed."

    def __init__(self, description: Optional[str] = None):
        self.description = description or self.default_description
        super().__init__(self.description)


class InvalidRequest(OAuthServiceError):
    default_description = "The request is missing a required parameter or is malformed."


class InvalidClient(OAuthServiceError):
    default_description = "Client authentication failed."


class InvalidRedirectUri(OAuthServiceError):
    default_description = "The redirect_uri does not match a registered redirect URI."


class InvalidScope(OAuthServiceError):
    default_description = "The requested scope is invalid or not allowed for this client."


class InvalidGrant(OAuthServiceError):
    default_description = "The authorization code or refresh token is invalid."


class InvalidCodeVerifier(OAuthServiceError):
    default_description = "The PKCE code_verifier is missing or does not match the code_challenge."


class TokenExpired(OAuthServiceError):
    default_description = "The token has expired."


class TokenRevoked(OAuthServiceError):
    default_description = "The token has been revoked."


class TokenReuseDetected(OAuthServiceError):
    """A revoked refresh token was presented again. The whole family has been revoked."""

    default_description = "Refresh token reuse detected."

    def __init__(
        self,
        family_id: str,
        client_id: str,
        user_id: str,
        description: Optional[str] = None
    ):
        self.family_id = family_id
        self.client_id = client_id
        self.user_id = user_id
        super().__init__(description)


class UnsupportedGrantType(OAuthServiceError):
    default_description = "The authorization grant type is not supported."


class StorageError(OAuthServiceError):
    default_description = "The token store failed to complete the operation."


class InternalError(OAuthServiceError):
    default_description = "Unexpected internal error."
