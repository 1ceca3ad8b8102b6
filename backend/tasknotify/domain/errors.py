"""Domain Errors - Centralized Exception Hierarchy"""
from typing import Any, Dict, Optional


class DomainError(Exception):
    """Base domain error - all errors extend this"""

    error_code: str = "DOMAIN_ERROR"
    http_status: int = 400

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None
    ):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        if error_code:
            self.error_code = error_code

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to API response dict"""
        return {
            "error": {
                "code": self.error_code,
                "message": self.message,
                "details": self.details
            }
        }


# Authentication & Authorization Errors
class AuthenticationError(DomainError):
    """Token or API key missing, invalid, or expired"""
    error_code = "AUTHENTICATION_ERROR"
    http_status = 401


class ForbiddenError(DomainError):
    """Caller does not own the resource (e.g. challenge verified by a non-owner)"""
    error_code = "FORBIDDEN"
    http_status = 403


# Validation Errors
class InvalidInputError(DomainError):
    """Input validation failed"""
    error_code = "INVALID_INPUT"
    http_status = 400


class MismatchError(DomainError):
    """Challenge number does not match"""
    error_code = "CHALLENGE_MISMATCH"
    http_status = 400


# Not Found Errors
class NotFoundError(DomainError):
    """Resource not found"""
    error_code = "NOT_FOUND"
    http_status = 404


class LinkingCodeNotFoundError(NotFoundError):
    """Linking code unknown"""
    error_code = "LINKING_CODE_NOT_FOUND"


class ChannelNotFoundError(NotFoundError):
    """No chat channel bound to the project"""
    error_code = "CHANNEL_NOT_FOUND"


# Lifecycle Errors
class ExpiredError(DomainError):
    """Linking code is past its expiry"""
    error_code = "EXPIRED"
    http_status = 410


class ConflictError(DomainError):
    """Protocol invariant violated"""
    error_code = "CONFLICT"
    http_status = 409


class AlreadyUsedError(ConflictError):
    """Linking code has already been consumed"""
    error_code = "ALREADY_USED"


class AlreadyLinkedError(ConflictError):
    """Chat identity or application account already has an active link"""
    error_code = "ALREADY_LINKED"


class NotVerifiedError(ConflictError):
    """Challenge number has not been confirmed yet"""
    error_code = "NOT_VERIFIED"


# External Service Errors
class ExternalServiceError(DomainError):
    """External service failure"""
    error_code = "EXTERNAL_SERVICE_ERROR"
    http_status = 502

    @property
    def status_code(self) -> Optional[int]:
        """HTTP status returned by the remote side, if any"""
        return self.details.get("status_code")


class DeliveryFailedError(ExternalServiceError):
    """Outbound send exhausted its retry"""
    error_code = "DELIVERY_FAILED"


class WebhookRejectedError(ExternalServiceError):
    """Webhook endpoint answered with a client error; not retried"""
    error_code = "WEBHOOK_REJECTED"
