"""
Service-layer exceptions for attendance recording and follow-up management.
"""


class AttendanceServiceError(Exception):
    """Base exception for attendance service errors."""

    status_code = 500

    def __init__(self, message: str, status_code: int = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class AttendanceValidationError(AttendanceServiceError):
    """Raised when attendance input is rejected before any state change."""

    status_code = 422

    def __init__(self, message: str, field: str = None):
        super().__init__(message)
        self.field = field


class FollowUpNotFoundError(AttendanceServiceError):
    """Raised when a follow-up suggestion does not exist."""

    status_code = 404


class PatternNotFoundError(AttendanceServiceError):
    """Raised when no stored pattern exists for a participant in a group."""

    status_code = 404
