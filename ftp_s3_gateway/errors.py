"""Exception hierarchy shared by the backend session, auth middleware and routes.

Backend failures are classified once, at the FTP adapter boundary, into an
``ErrorKind``. Everything above the adapter dispatches on the exception type
(or ``kind``) and never re-parses FTP reply text.
"""

from enum import Enum


class ErrorKind(str, Enum):
    """Classification of a backend failure."""

    TRANSIENT = "transient"
    NOT_FOUND = "not_found"
    PERMISSION_DENIED = "permission_denied"
    ALREADY_EXISTS = "already_exists"
    OTHER = "other"


class GatewayError(Exception):
    """Base class for all gateway errors."""

    status_code: int = 500
    code: str = "InternalError"

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message


# ============================================================================
# Backend errors
# ============================================================================


class BackendError(GatewayError):
    """A failure reported by (or while talking to) the FTP backend."""

    kind: ErrorKind = ErrorKind.OTHER


class BackendUnavailable(BackendError):
    """The transport connection to the FTP server could not be established."""


class BackendAuthFailed(BackendError):
    """The FTP server rejected the configured username/password."""

    kind = ErrorKind.PERMISSION_DENIED


class TransientConnectivity(BackendError):
    """Connection-level failure; recoverable by reconnecting."""

    kind = ErrorKind.TRANSIENT


class NotFound(BackendError):
    """The requested path does not exist on the backend."""

    status_code = 404
    code = "NoSuchKey"
    kind = ErrorKind.NOT_FOUND


class PermissionDenied(BackendError):
    kind = ErrorKind.PERMISSION_DENIED


class AlreadyExists(BackendError):
    kind = ErrorKind.ALREADY_EXISTS


class BackendOperationError(BackendError):
    """Any other backend failure; surfaced with the raw backend text."""

    kind = ErrorKind.OTHER


# ============================================================================
# Authentication errors (all HTTP 401)
# ============================================================================


class AuthError(GatewayError):
    status_code = 401
    code = "AccessDenied"


class InvalidAuthHeader(AuthError):
    """Authorization header absent or not a parseable SigV4 header."""

    code = "AuthorizationHeaderMalformed"


class MissingAuthHeader(InvalidAuthHeader):
    code = "AccessDenied"


class UnknownAccessKey(AuthError):
    code = "InvalidAccessKeyId"


class SignatureInvalid(AuthError):
    code = "SignatureDoesNotMatch"


# ============================================================================
# Routing errors
# ============================================================================


class NoSuchBucket(GatewayError):
    status_code = 404
    code = "NoSuchBucket"


class UnsupportedOperation(GatewayError):
    status_code = 405
    code = "MethodNotAllowed"
