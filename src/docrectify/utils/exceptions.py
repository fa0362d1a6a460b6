"""
DocRectify - Custom Exceptions Module

This module defines custom exception classes for specific error cases
in the DocRectify engine. A detection miss is not an error: detectors
return None for it.
"""


class DocRectifyError(Exception):
    """Base exception for all DocRectify errors.

    All custom exceptions should inherit from this class to allow
    catching any DocRectify-specific error.
    """

    def __init__(self, message: str, details: str | None = None) -> None:
        """Initialize the exception.

        Args:
            message: Human-readable error message
            details: Optional technical details for debugging
        """
        super().__init__(message)
        self.message = message
        self.details = details

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} ({self.details})"
        return self.message


class InputImageError(DocRectifyError):
    """Raised when an image payload is malformed or cannot be decoded."""

    def __init__(self, reason: str | None = None, source: str | None = None) -> None:
        """Initialize the exception.

        Args:
            reason: Optional reason why the payload was rejected
            source: Optional short description of the payload (path, kind)
        """
        self.reason = reason
        self.source = source

        msg = "Invalid image input"
        if reason:
            msg += f": {reason}"

        super().__init__(msg, details=f"source={source}" if source else None)


class NumericalError(DocRectifyError):
    """Raised when a linear system or homography is singular or degenerate."""

    def __init__(self, operation: str, reason: str | None = None) -> None:
        """Initialize the exception.

        Args:
            operation: The numerical step that failed (e.g. "homography")
            reason: Optional reason for the failure
        """
        self.operation = operation
        self.reason = reason

        msg = f"Failed to compute {operation}"
        if reason:
            msg += f": {reason}"

        super().__init__(msg)


class ValidationError(DocRectifyError):
    """Raised when a request field (corners, mode, payload) is unusable."""

    def __init__(self, field: str, reason: str, received: str | None = None) -> None:
        """Initialize the exception.

        Args:
            field: Dotted name of the offending field (e.g. "corners.tl")
            reason: What the field was expected to hold
            received: Optional short rendering of the rejected value
        """
        self.field = field
        self.reason = reason
        self.received = received

        super().__init__(f"Invalid {field}: {reason}", details=f"got {received}" if received is not None else None)


class ConfigurationError(DocRectifyError):
    """Raised when a scanner setting is missing, mistyped or out of range."""

    def __init__(self, setting: str, reason: str) -> None:
        self.setting = setting
        self.reason = reason
        super().__init__(f"Bad setting '{setting}': {reason}")
