"""
Authentication error kinds.

Every failure the auth core can produce is one of the classes below. Services raise
them, main.py renders them as ``{"detail": ..., "code": ...}`` with the class status.
Protocol errors (bad nonce, signature, content, refresh token) are caller-visible;
InfrastructureUnavailable hides the underlying store error from the caller.
"""

from fastapi import status


class AuthError(Exception):
    """Base class for all auth core failures."""

    status_code: int = status.HTTP_400_BAD_REQUEST
    default_detail: str = "Authentication failed"

    def __init__(self, detail: str | None = None) -> None:
        self.detail = detail or self.default_detail
        super().__init__(self.detail)

    @property
    def code(self) -> str:
        return self.__class__.__name__


class NonceNotFoundOrExpired(AuthError):
    default_detail = "Invalid or expired nonce"


class UnsupportedMessageFormat(AuthError):
    default_detail = "Unsupported SIWA output format"


class SignatureInvalid(AuthError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_detail = "Invalid signature"


class MessageContentMismatch(AuthError):
    default_detail = "Invalid message content"


class RefreshTokenMissing(AuthError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_detail = "Refresh token not found"


class RefreshTokenInvalid(AuthError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_detail = "Invalid or expired refresh token"


class UserNotFound(AuthError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "User not found"


class ProvisioningFailure(AuthError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = "Failed to create embedded wallet"


class InfrastructureUnavailable(AuthError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_detail = "Service temporarily unavailable"


class RateLimitExceeded(AuthError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    default_detail = "Too many requests"
