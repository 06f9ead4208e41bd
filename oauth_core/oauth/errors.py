# oauth_core/oauth/errors.py
import logging
from fastapi import HTTPException, status
from typing import Dict, Type

from . import exceptions

logger = logging.getLogger(__name__)


class OAuthError(HTTPException):
    """Base class for OAuth 2.1 errors that properly formats error responses."""

    def __init__(
        self,
        status_code: int,
        error: str,
        error_description: str | None = None,
        error_uri: str | None = None
    ):
        self.error = error
        self.error_description = error_description
        self.error_uri = error_uri

        headers = {"WWW-Authenticate": "Bearer"}

        detail = {"error": error}
        if error_description:
            detail["error_description"] = error_description
        if error_uri:
            detail["error_uri"] = error_uri

        super().__init__(status_code=status_code, detail=detail, headers=headers)


class InvalidRequestError(OAuthError):
    """
    The request is missing a required parameter, includes an
    unsupported parameter value (other than grant type),
    repeats a parameter, includes multiple credentials,
    utilizes more than one mechanism for authenticating the
    client, or is otherwise malformed.
    (RFC 6749 - Section 5.2)
    """

    def __init__(self, error_description: str | None = None, error_uri: str | None = None):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            error="invalid_request",
            error_description=error_description,
            error_uri=error_uri
        )


class InvalidClientError(OAuthError):
    """
    Client authentication failed (e.g., unknown client, no
    client authentication included, or unsupported
    authentication method).
    (RFC 6749 - Section 5.2)
    """

    def __init__(
        self,
        error_description: str | None = "Client authentication failed.",
        error_uri: str | None = None
    ):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            error="invalid_client",
            error_description=error_description,
            error_uri=error_uri
        )
        # RFC 6749 - Section 5.2: advertise the supported client auth scheme
        self.headers = {"WWW-Authenticate": 'Basic realm="oauth"'}


class InvalidGrantError(OAuthError):
    """
    The provided authorization grant (e.g., authorization
    code) or refresh token is invalid, expired, revoked, does
    not match the redirection URI used in the authorization
    request, or was issued to another client.
    (RFC 6749 - Section 5.2)
    """

    def __init__(
        self,
        error_description: str | None = "Invalid authorization grant or refresh token.",
        error_uri: str | None = None
    ):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            error="invalid_grant",
            error_description=error_description,
            error_uri=error_uri
        )


class UnsupportedGrantTypeError(OAuthError):
    """
    The authorization grant type is not supported by the
    authorization server.
    (RFC 6749 - Section 5.2)
    """

    def __init__(self, error_description: str | None = None, error_uri: str | None = None):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            error="unsupported_grant_type",
            error_description=error_description,
            error_uri=error_uri
        )


class InvalidScopeError(OAuthError):
    """
    The requested scope is invalid, unknown, malformed, or
    exceeds the scope granted by the resource owner.
    (RFC 6749 - Section 5.2)
    """

    def __init__(self, error_description: str | None = None, error_uri: str | None = None):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            error="invalid_scope",
            error_description=error_description,
            error_uri=error_uri
        )


class ServerError(OAuthError):
    """
    The authorization server encountered an unexpected
    condition that prevented it from fulfilling the request.
    (RFC 6749 - Section 4.1.2.1 / 5.2)
    """

    def __init__(
        self,
        error_description: str | None = "The authorization server encountered an internal error.",
        error_uri: str | None = None
    ):
        super().__init__(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            error="server_error",
            error_description=error_description,
            error_uri=error_uri
        )


# Domain error -> RFC error response. Every concrete OAuthServiceError subclass
# must appear here; credential failures deliberately share one RFC code.
ERROR_MAPPING: Dict[Type[exceptions.OAuthServiceError], Type[OAuthError]] = {
    exceptions.InvalidRequest: InvalidRequestError,
    exceptions.InvalidRedirectUri: InvalidRequestError,
    exceptions.InvalidClient: InvalidClientError,
    exceptions.InvalidScope: InvalidScopeError,
    exceptions.InvalidGrant: InvalidGrantError,
    exceptions.InvalidCodeVerifier: InvalidGrantError,
    exceptions.TokenExpired: InvalidGrantError,
    exceptions.TokenRevoked: InvalidGrantError,
    exceptions.TokenReuseDetected: InvalidGrantError,
    exceptions.UnsupportedGrantType: UnsupportedGrantTypeError,
    exceptions.StorageError: ServerError,
    exceptions.InternalError: ServerError,
}

# Errors whose description may be echoed to the caller. Everything else gets
# the generic description of its RFC error class.
_CLIENT_INPUT_ERRORS = (
    exceptions.InvalidRequest,
    exceptions.InvalidRedirectUri,
    exceptions.InvalidScope,
    exceptions.UnsupportedGrantType,
)


def to_oauth_error(exc: exceptions.OAuthServiceError) -> OAuthError:
    """Translate a domain error into the RFC 6749 HTTP error it maps to."""
    error_cls = ERROR_MAPPING.get(type(exc))
    if error_cls is None:
        # Unmapped subclasses fall back to their nearest mapped ancestor
        for ancestor in type(exc).__mro__[1:]:
            if ancestor in ERROR_MAPPING:
                error_cls = ERROR_MAPPING[ancestor]
                break
        else:
            logger.error(f"No OAuth error mapping for {type(exc).__name__}; reporting server_error.")
            return ServerError()

    if isinstance(exc, _CLIENT_INPUT_ERRORS):
        return error_cls(error_description=exc.description)
    return error_cls()
