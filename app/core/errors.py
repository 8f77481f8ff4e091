"""
Error taxonomy for the session service.

Every failure the core can raise is an ``AuthError`` carrying an ``ErrorKind``.
Internal code only ever raises and catches these; the translation to HTTP
status codes lives in ``status_for`` and is applied by the exception handler
registered in ``main.py``.
"""

from enum import Enum

from fastapi import status


class ErrorKind(str, Enum):
    """Kinds of failures raised by the token subsystem and its collaborators."""
    MISSING_CREDENTIAL = "missing_credential"
    MALFORMED_TOKEN = "malformed_token"
    EXPIRED_TOKEN = "expired_token"
    REPLAYED_TOKEN = "replayed_token"
    STORE_UNAVAILABLE = "store_unavailable"
    SIGNING_FAILURE = "signing_failure"
    UPSTREAM_ERROR = "upstream_error"
    PROVIDER_REJECTED = "provider_rejected"
    REDIRECT_NOT_ALLOWED = "redirect_not_allowed"


class AuthError(Exception):
    """Base class for all service errors."""

    kind: ErrorKind = ErrorKind.UPSTREAM_ERROR
    default_message = "Authentication error"

    def __init__(self, message: str = ""):
        self.message = message or self.default_message
        super().__init__(self.message)


# ─── Credential errors: caller must re-authenticate ───

class MissingCredential(AuthError):
    kind = ErrorKind.MISSING_CREDENTIAL
    default_message = "Missing credential"


class MalformedToken(AuthError):
    kind = ErrorKind.MALFORMED_TOKEN
    default_message = "Invalid token"


class ExpiredToken(AuthError):
    kind = ErrorKind.EXPIRED_TOKEN
    default_message = "Token has expired"


class ReplayedToken(AuthError):
    kind = ErrorKind.REPLAYED_TOKEN
    default_message = "Invalid refresh token"


# ─── Infrastructure errors ───

class StoreUnavailable(AuthError):
    kind = ErrorKind.STORE_UNAVAILABLE
    default_message = "Token store unavailable"


class SigningFailure(AuthError):
    kind = ErrorKind.SIGNING_FAILURE
    default_message = "Unable to sign token"


class UpstreamError(AuthError):
    kind = ErrorKind.UPSTREAM_ERROR
    default_message = "Identity provider request failed"


class ProviderRejected(UpstreamError):
    """The identity provider answered with a structured OAuth error."""
    kind = ErrorKind.PROVIDER_REJECTED
    default_message = "Identity provider rejected the authorization code"


# ─── Request validation ───

class RedirectNotAllowed(AuthError):
    kind = ErrorKind.REDIRECT_NOT_ALLOWED
    default_message = "Redirect target is not allowed"


CREDENTIAL_ERRORS = frozenset({
    ErrorKind.MISSING_CREDENTIAL,
    ErrorKind.MALFORMED_TOKEN,
    ErrorKind.EXPIRED_TOKEN,
    ErrorKind.REPLAYED_TOKEN,
})


def status_for(kind: ErrorKind) -> int:
    """Map an error kind to the HTTP status returned to the client."""
    if kind in CREDENTIAL_ERRORS:
        return status.HTTP_401_UNAUTHORIZED
    if kind in (ErrorKind.REDIRECT_NOT_ALLOWED, ErrorKind.PROVIDER_REJECTED):
        return status.HTTP_400_BAD_REQUEST
    return status.HTTP_500_INTERNAL_SERVER_ERROR
