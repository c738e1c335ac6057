from fastapi import status


class AuthError(Exception):
    """Base class for failures surfaced to the client as `{"message": ...}`."""

    status_code: int = status.HTTP_400_BAD_REQUEST
    default_message: str = "Bad request"

    def __init__(self, message: str | None = None, reason: str | None = None):
        self.message = message or self.default_message
        # Internal detail for logs only, never sent to the client
        self.reason = reason or self.message
        super().__init__(self.message)


class ClientInputError(AuthError):
    """Missing or malformed request fields."""
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Bad request"


class ReplayOrExpiryError(AuthError):
    """Nonce absent, mismatched or expired, or timestamp outside the skew window."""
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid or expired nonce"


class CryptographicError(AuthError):
    """Signature (or credential) could not be verified."""
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Signature verification failed"


class IdentityMismatchError(AuthError):
    """Recovered signer, claimed account and claimed DID disagree."""
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Signature does not match account"


class InternalError(AuthError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Verification error"
