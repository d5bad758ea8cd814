"""
Error taxonomy for the progress and analytics engine.

Every error carries an HTTP-equivalent status code; the handlers in app.main
turn them into JSON responses.
"""
from typing import Any, Dict, List, Optional


class AppError(Exception):
    """Base class for operational errors raised by the engine."""

    status_code: int = 500

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    @property
    def status(self) -> str:
        return "fail" if str(self.status_code).startswith("4") else "error"

    def to_dict(self) -> Dict[str, Any]:
        return {"success": False, "status": self.status, "message": self.message}


class ValidationError(AppError):
    """Malformed or out-of-range input. Never retried."""

    status_code = 400

    def __init__(self, message: str = "Validation failed", errors: Optional[List[str]] = None):
        super().__init__(message)
        self.errors = errors or []

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        if self.errors:
            data["errors"] = self.errors
        return data


class PermissionDeniedError(AppError):
    status_code = 403

    def __init__(self, message: str = "You do not have permission to perform this action"):
        super().__init__(message)


class LockedContentError(PermissionDeniedError):
    """Part belongs to a unit the student has not unlocked yet."""

    def __init__(self, unit_name: str):
        super().__init__(f"Unit '{unit_name}' is locked. Complete the previous unit first.")
        self.unit_name = unit_name


class NotFoundError(AppError):
    status_code = 404

    def __init__(self, resource: str = "Resource"):
        super().__init__(f"{resource} not found")


class ConcurrencyConflict(AppError):
    """Lost update detected on a progress record."""

    status_code = 409

    def __init__(self, message: str = "Progress record was modified concurrently"):
        super().__init__(message)


class ReportCancelledError(AppError):
    status_code = 409

    def __init__(self, report_id: int):
        super().__init__(f"Report {report_id} was cancelled")
        self.report_id = report_id


class AggregationPartialFailure(AppError):
    """One student's ledger data could not be aggregated."""

    status_code = 500

    def __init__(self, student_id: int, reason: str):
        super().__init__(f"Aggregation failed for student {student_id}: {reason}")
        self.student_id = student_id
        self.reason = reason


class TransientIOError(AppError):
    """Ledger write or transport timed out; safe to retry."""

    status_code = 503

    def __init__(self, message: str = "Temporary storage failure, please retry"):
        super().__init__(message)


class CompletionNotAcknowledged(AppError):
    """Completion signal could not be delivered within the retry budget."""

    status_code = 503

    def __init__(self, session_id: str):
        super().__init__(f"Completion for session {session_id} was not acknowledged")
        self.session_id = session_id
