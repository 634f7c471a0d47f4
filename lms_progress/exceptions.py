"""
lms_progress/exceptions.py
Typed exceptions for the progress engine and module authoring

Every error carries:
- message: human-readable description
- status_code: HTTP status a calling handler should map it to
- code: machine-readable ErrorCode value
"""
from typing import Any, Dict, Optional


class ErrorCode:
    """Unique error codes for machine-readable error handling"""

    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_INPUT = "INVALID_INPUT"

    NOT_FOUND = "NOT_FOUND"
    COURSE_NOT_FOUND = "COURSE_NOT_FOUND"
    MODULE_NOT_FOUND = "MODULE_NOT_FOUND"
    CONTENT_NOT_FOUND = "CONTENT_NOT_FOUND"

    MODULE_LOCKED = "MODULE_LOCKED"

    STORAGE_ERROR = "STORAGE_ERROR"
    CONCURRENT_MODIFICATION = "CONCURRENT_MODIFICATION"


class LMSProgressException(Exception):
    """Base exception for lms_progress"""
    status_code: int = 500
    code: str = ErrorCode.STORAGE_ERROR

    def __init__(
        self,
        message: str,
        status_code: int = None,
        code: str = None,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        if status_code:
            self.status_code = status_code
        if code:
            self.code = code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "success": False,
            "message": self.message,
            "code": self.code,
        }
        if self.details:
            result["details"] = self.details
        return result


class ValidationError(LMSProgressException):
    """
    Raised when authoring input is rejected.

    Examples:
    - Empty reorder list
    - Reorder list naming modules outside the course
    - Moving content into the module being deleted
    """
    status_code = 400
    code = ErrorCode.VALIDATION_ERROR

    def __init__(self, message: str = "Invalid input", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details=details)


class NotFoundError(LMSProgressException):
    """
    Raised when a referenced course, module or content item doesn't exist
    (or is soft-deleted).

    A missing progress row is NOT an error; it is the learner's zero state.
    """
    status_code = 404
    code = ErrorCode.NOT_FOUND

    def __init__(self, resource: str, identifier: Any = None, code: str = None):
        message = f"{resource} not found"
        if identifier is not None:
            message = f"{resource} with id '{identifier}' not found"
        super().__init__(message, code=code, details={"resource": resource, "id": identifier})


class TransientStorageError(LMSProgressException):
    """
    Raised when the data-access layer fails (connection drop, lock
    timeout, constraint surprise). Callers may retry the whole operation.
    """
    status_code = 503
    code = ErrorCode.STORAGE_ERROR

    def __init__(self, message: str = "Progress storage is temporarily unavailable"):
        super().__init__(message)


class ConcurrencyConflictError(TransientStorageError):
    """
    Raised when an optimistic write on a progress row keeps losing to
    concurrent writers after the configured retries.
    """
    status_code = 409
    code = ErrorCode.CONCURRENT_MODIFICATION

    def __init__(self, message: str, module_id: str = None, user_id: str = None):
        super().__init__(message)
        self.details = {"module_id": module_id, "user_id": user_id}
