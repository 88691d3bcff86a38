"""Custom exception classes for the form relay."""

from typing import Any, Dict, Optional


class RelayError(Exception):
    """Base exception for all relay errors."""

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.status_code = status_code
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for JSON response."""
        return {
            "error": {
                "message": self.message,
                "code": self.code,
                "status_code": self.status_code,
                "details": self.details,
            }
        }


class ClientInputError(RelayError):
    """Raised for bad submissions: unparseable body or failed verification."""

    def __init__(
        self,
        message: str = "Invalid submission",
        status_code: int = 400,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message,
            status_code=status_code,
            code="CLIENT_INPUT_ERROR",
            details=details,
        )


class UnsupportedMediaTypeError(ClientInputError):
    """Raised when the request body uses an encoding the relay cannot read."""

    def __init__(self, content_type: Optional[str] = None):
        super().__init__(
            message="Unsupported content type",
            status_code=415,
            details={"content_type": content_type or ""},
        )
        self.code = "UNSUPPORTED_MEDIA_TYPE"


class ConfigurationError(RelayError):
    """Raised when the relay is missing settings or the form kind is unusable."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            status_code=500,
            code="CONFIGURATION_ERROR",
            details=details,
        )


class UpstreamError(RelayError):
    """Raised when a fallback or ERPNext call fails."""

    def __init__(
        self,
        service: str,
        message: Optional[str] = None,
        status: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        error_message = message or f"External service '{service}' unavailable"
        error_details = details or {}
        error_details["service"] = service
        if status is not None:
            error_details["upstream_status"] = status
        super().__init__(
            message=error_message,
            status_code=502,
            code="UPSTREAM_ERROR",
            details=error_details,
        )
        self.service = service
        self.status = status


class AttachmentValidationError(RelayError):
    """Raised when a resume is too large or of a disallowed type."""

    def __init__(
        self,
        message: str,
        filename: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        error_details = details or {}
        if filename:
            error_details["filename"] = filename
        super().__init__(
            message=message,
            status_code=422,
            code="ATTACHMENT_VALIDATION_ERROR",
            details=error_details,
        )
