"""Domain-specific exceptions for service layer operations.

This module provides a structured exception hierarchy for the expense tracker,
enabling consistent error handling, logging, and client response generation.

Architecture:
- ServiceError: Base exception with correlation ID and context support
- Category Base Classes: Domain-specific base exceptions (AuthError, BusinessError, etc.)
- Specific Exceptions: Concrete exceptions for specific business scenarios
"""

from enum import Enum
from typing import Any, Dict, Optional, Union
from http import HTTPStatus


class ErrorSeverity(Enum):
    """Error severity levels for logging and monitoring."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorCategory(Enum):
    """Error categories for classification and handling."""
    AUTHENTICATION = "authentication"
    AUTHORIZATION = "authorization"
    VALIDATION = "validation"
    BUSINESS_RULE = "business_rule"
    RESOURCE_NOT_FOUND = "resource_not_found"
    CONFLICT = "conflict"
    EXTERNAL_SERVICE = "external_service"
    INFRASTRUCTURE = "infrastructure"
    SYSTEM = "system"


class ServiceError(Exception):
    """Base exception for all service layer errors.

    Attributes:
        message: Human-readable error message
        error_code: Machine-readable error code for client handling
        correlation_id: Request correlation ID for tracing
        details: Additional error context (sanitized for logging)
        user_message: User-friendly message for client display
        severity: Error severity level for logging/monitoring
        category: Error category for classification
        http_status: HTTP status code for API responses
    """

    def __init__(
        self,
        message: str,
        error_code: str = "SERVICE_ERROR",
        correlation_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        user_message: Optional[str] = None,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        category: ErrorCategory = ErrorCategory.SYSTEM,
        http_status: HTTPStatus = HTTPStatus.INTERNAL_SERVER_ERROR
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.correlation_id = correlation_id
        self.details = details or {}
        self.user_message = user_message or message
        self.severity = severity
        self.category = category
        self.http_status = http_status

    def to_dict(self, include_sensitive: bool = False) -> Dict[str, Any]:
        """Convert exception to dictionary for logging or client response.

        Args:
            include_sensitive: Whether to include sensitive details

        Returns:
            Dictionary representation of the error
        """
        result = {
            "error_code": self.error_code,
            "message": self.user_message,
            "severity": self.severity.value,
            "category": self.category.value,
            "http_status": self.http_status.value
        }

        if self.correlation_id:
            result["correlation_id"] = self.correlation_id

        if include_sensitive and self.details:
            result["details"] = self.details
            result["internal_message"] = self.message

        return result

    def __str__(self) -> str:
        return f"{self.error_code}: {self.message}"


# =============================================================================
# AUTHENTICATION & SESSION ERRORS
# =============================================================================

class AuthError(ServiceError):
    """Base class for authentication and authorization errors."""

    def __init__(
        self,
        message: str,
        error_code: str,
        correlation_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        user_message: Optional[str] = None,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        category: ErrorCategory = ErrorCategory.AUTHENTICATION,
        http_status: HTTPStatus = HTTPStatus.UNAUTHORIZED
    ):
        super().__init__(
            message=message,
            error_code=error_code,
            correlation_id=correlation_id,
            details=details,
            user_message=user_message,
            severity=severity,
            category=category,
            http_status=http_status
        )


class AuthenticationError(AuthError):
    """Authentication failed."""

    def __init__(
        self,
        message: str = "Authentication failed",
        correlation_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            error_code="AUTH_FAILED",
            correlation_id=correlation_id,
            details=details,
            user_message="Authentication failed. Please check your credentials."
        )


class UserNotFoundError(AuthError):
    """User not found during authentication."""

    def __init__(
        self,
        email: str,
        correlation_id: Optional[str] = None
    ):
        super().__init__(
            message="User not found",
            error_code="USER_NOT_FOUND",
            correlation_id=correlation_id,
            details={"email": email},
            user_message="User account not found. Please check your email address.",
            category=ErrorCategory.RESOURCE_NOT_FOUND,
            http_status=HTTPStatus.NOT_FOUND
        )


class UserInactiveError(AuthError):
    """User account is inactive."""

    def __init__(
        self,
        user_id: str,
        correlation_id: Optional[str] = None
    ):
        super().__init__(
            message="User account is inactive",
            error_code="USER_INACTIVE",
            correlation_id=correlation_id,
            details={"user_id": user_id},
            user_message="Your account is inactive. Please contact support.",
            http_status=HTTPStatus.FORBIDDEN
        )


class InvalidPasswordError(AuthError):
    """Invalid password provided."""

    def __init__(
        self,
        correlation_id: Optional[str] = None
    ):
        super().__init__(
            message="Invalid password",
            error_code="INVALID_PASSWORD",
            correlation_id=correlation_id,
            user_message="Invalid password. Please try again.",
            severity=ErrorSeverity.LOW
        )


class EmailAlreadyExistsError(AuthError):
    """Email address is already registered."""

    def __init__(
        self,
        email: str,
        correlation_id: Optional[str] = None
    ):
        super().__init__(
            message="Email address already registered",
            error_code="EMAIL_EXISTS",
            correlation_id=correlation_id,
            details={"email": email},
            user_message="This email address is already registered. Please use a different email or try logging in.",
            category=ErrorCategory.CONFLICT,
            http_status=HTTPStatus.CONFLICT
        )


class SessionClosedError(AuthError):
    """The session behind a token was signed out or never opened."""

    def __init__(
        self,
        session_id: Optional[str] = None,
        correlation_id: Optional[str] = None
    ):
        super().__init__(
            message="Session is not active",
            error_code="SESSION_CLOSED",
            correlation_id=correlation_id,
            details={"session_id": session_id},
            user_message="Your session has ended. Please sign in again.",
            severity=ErrorSeverity.LOW
        )


# =============================================================================
# VALIDATION ERRORS
# =============================================================================

class ValidationError(ServiceError):
    """Input validation failed."""

    def __init__(
        self,
        field: str,
        message: str,
        correlation_id: Optional[str] = None
    ):
        super().__init__(
            message=f"Validation failed for {field}: {message}",
            error_code="VALIDATION_ERROR",
            correlation_id=correlation_id,
            details={"field": field, "validation_message": message},
            user_message=f"Invalid {field}: {message}",
            severity=ErrorSeverity.LOW,
            category=ErrorCategory.VALIDATION,
            http_status=HTTPStatus.BAD_REQUEST
        )


class AmountParseError(ServiceError):
    """Amount text is not a decimal number."""

    def __init__(
        self,
        raw_amount: Any,
        correlation_id: Optional[str] = None
    ):
        super().__init__(
            message=f"Amount {raw_amount!r} is not a decimal number",
            error_code="AMOUNT_PARSE_FAILED",
            correlation_id=correlation_id,
            details={"amount": str(raw_amount)},
            user_message="Amount must be a number such as 12.50.",
            severity=ErrorSeverity.LOW,
            category=ErrorCategory.VALIDATION,
            http_status=HTTPStatus.BAD_REQUEST
        )


# =============================================================================
# BUSINESS DOMAIN ERRORS
# =============================================================================

class BusinessError(ServiceError):
    """Base class for business domain errors."""

    def __init__(
        self,
        message: str,
        error_code: str,
        correlation_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        user_message: Optional[str] = None,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        category: ErrorCategory = ErrorCategory.BUSINESS_RULE,
        http_status: HTTPStatus = HTTPStatus.BAD_REQUEST
    ):
        super().__init__(
            message=message,
            error_code=error_code,
            correlation_id=correlation_id,
            details=details,
            user_message=user_message,
            severity=severity,
            category=category,
            http_status=http_status
        )


class ResourceNotFoundError(BusinessError):
    """Base class for resource not found errors."""

    def __init__(
        self,
        resource_type: str,
        resource_id: Union[int, str],
        user_id: Optional[str] = None,
        correlation_id: Optional[str] = None
    ):
        details = {"resource_type": resource_type, "resource_id": resource_id}
        if user_id is not None:
            details["user_id"] = user_id

        super().__init__(
            message=f"{resource_type} not found or access denied",
            error_code=f"{resource_type.upper()}_NOT_FOUND",
            correlation_id=correlation_id,
            details=details,
            user_message=f"{resource_type} not found or you don't have permission to access it.",
            category=ErrorCategory.RESOURCE_NOT_FOUND,
            http_status=HTTPStatus.NOT_FOUND
        )


# =============================================================================
# RECEIPT DOMAIN ERRORS
# =============================================================================

class ReceiptError(BusinessError):
    """Receipt-related errors."""
    pass


class ReceiptNotFoundError(ResourceNotFoundError):
    """Receipt not found or not owned by user."""

    def __init__(
        self,
        receipt_id: str,
        user_id: Optional[str] = None,
        correlation_id: Optional[str] = None
    ):
        super().__init__(
            resource_type="Receipt",
            resource_id=receipt_id,
            user_id=user_id,
            correlation_id=correlation_id
        )


class ReceiptWriteError(ReceiptError):
    """Receipt insert, update or delete was rejected by the database."""

    def __init__(
        self,
        operation: str,
        reason: str,
        receipt_id: Optional[str] = None,
        correlation_id: Optional[str] = None
    ):
        super().__init__(
            message=f"Receipt {operation} failed: {reason}",
            error_code="RECEIPT_WRITE_FAILED",
            correlation_id=correlation_id,
            details={"operation": operation, "receipt_id": receipt_id, "reason": reason},
            user_message=f"Unable to {operation} receipt. Please try again.",
            severity=ErrorSeverity.HIGH,
            http_status=HTTPStatus.INTERNAL_SERVER_ERROR
        )


class InvalidActionError(ReceiptError):
    """A receipt action was requested out of order."""

    def __init__(
        self,
        requested: str,
        pending: str,
        correlation_id: Optional[str] = None
    ):
        super().__init__(
            message=f"Cannot {requested} while '{pending}' is pending",
            error_code="INVALID_PENDING_ACTION",
            correlation_id=correlation_id,
            details={"requested": requested, "pending": pending},
            user_message="Another receipt action is already in progress.",
            severity=ErrorSeverity.LOW,
            category=ErrorCategory.CONFLICT,
            http_status=HTTPStatus.CONFLICT
        )


# =============================================================================
# IMAGE & INFRASTRUCTURE ERRORS
# =============================================================================

class InfrastructureError(ServiceError):
    """Base class for infrastructure-related errors."""

    def __init__(
        self,
        message: str,
        error_code: str,
        correlation_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        user_message: Optional[str] = None,
        severity: ErrorSeverity = ErrorSeverity.HIGH,
        category: ErrorCategory = ErrorCategory.INFRASTRUCTURE,
        http_status: HTTPStatus = HTTPStatus.INTERNAL_SERVER_ERROR
    ):
        super().__init__(
            message=message,
            error_code=error_code,
            correlation_id=correlation_id,
            details=details,
            user_message=user_message or "A system error occurred. Please try again later.",
            severity=severity,
            category=category,
            http_status=http_status
        )


class ImageError(InfrastructureError):
    """Receipt image errors."""
    pass


class ImageUploadError(ImageError):
    """Image upload failed."""

    def __init__(
        self,
        owner_id: str,
        reason: str,
        correlation_id: Optional[str] = None
    ):
        super().__init__(
            message=f"Image upload failed for '{owner_id}': {reason}",
            error_code="IMAGE_UPLOAD_FAILED",
            correlation_id=correlation_id,
            details={"owner_id": owner_id, "reason": reason},
            user_message="Receipt image upload failed. Please try again."
        )


class ImageNotFoundError(ImageError):
    """Image not found in storage."""

    def __init__(
        self,
        bucket_ref: str,
        correlation_id: Optional[str] = None
    ):
        super().__init__(
            message=f"Image not found: {bucket_ref}",
            error_code="IMAGE_NOT_FOUND",
            correlation_id=correlation_id,
            details={"bucket_ref": bucket_ref},
            user_message="Receipt image not found.",
            severity=ErrorSeverity.MEDIUM,
            category=ErrorCategory.RESOURCE_NOT_FOUND,
            http_status=HTTPStatus.NOT_FOUND
        )


class ImageStorageError(ImageError):
    """Image storage system error."""

    def __init__(
        self,
        operation: str,
        reason: str,
        bucket_ref: Optional[str] = None,
        correlation_id: Optional[str] = None
    ):
        super().__init__(
            message=f"Image storage {operation} failed: {reason}",
            error_code="IMAGE_STORAGE_ERROR",
            correlation_id=correlation_id,
            details={"operation": operation, "bucket_ref": bucket_ref, "reason": reason},
            severity=ErrorSeverity.CRITICAL
        )


class InvalidImageError(ImageError):
    """Uploaded bytes are not a readable image."""

    def __init__(
        self,
        reason: str,
        correlation_id: Optional[str] = None
    ):
        super().__init__(
            message=f"Invalid receipt image: {reason}",
            error_code="INVALID_IMAGE",
            correlation_id=correlation_id,
            details={"reason": reason},
            user_message="The uploaded file is not a valid image.",
            severity=ErrorSeverity.LOW,
            category=ErrorCategory.VALIDATION,
            http_status=HTTPStatus.BAD_REQUEST
        )


class ImageSizeLimitError(ImageError):
    """Image size exceeds limit."""

    def __init__(
        self,
        file_size: int,
        max_size: int,
        correlation_id: Optional[str] = None
    ):
        max_size_mb = max_size / (1024 * 1024)
        file_size_mb = file_size / (1024 * 1024)

        super().__init__(
            message=f"Image size {file_size} bytes exceeds limit of {max_size} bytes",
            error_code="IMAGE_SIZE_LIMIT_EXCEEDED",
            correlation_id=correlation_id,
            details={"file_size": file_size, "max_size": max_size},
            user_message=f"Image size ({file_size_mb:.1f}MB) exceeds the maximum allowed size of {max_size_mb:.1f}MB.",
            severity=ErrorSeverity.LOW,
            category=ErrorCategory.VALIDATION,
            http_status=HTTPStatus.BAD_REQUEST
        )


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================

def get_http_status_for_error(error: Exception) -> HTTPStatus:
    """Get appropriate HTTP status code for an exception.

    Args:
        error: Exception instance

    Returns:
        Appropriate HTTP status code
    """
    if isinstance(error, ServiceError):
        return error.http_status

    error_mappings = {
        ValueError: HTTPStatus.BAD_REQUEST,
        TypeError: HTTPStatus.BAD_REQUEST,
        KeyError: HTTPStatus.NOT_FOUND,
        NotImplementedError: HTTPStatus.NOT_IMPLEMENTED,
    }

    return error_mappings.get(type(error), HTTPStatus.INTERNAL_SERVER_ERROR)
