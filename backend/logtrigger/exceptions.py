"""Standardized exceptions for logtrigger.

The evaluation engine never raises for malformed user input; problems with
recipes, patterns and logs are reported inside the results. These exceptions
belong to the loading and command-line layers.
"""

from pydantic import BaseModel

# =============================================================================
# Error Detail Model
# =============================================================================


class ErrorDetail(BaseModel):
    """Detailed error information."""

    field: str | None = None
    message: str
    code: str | None = None


# =============================================================================
# Custom Exceptions
# =============================================================================


class LogTriggerException(Exception):
    """Base exception for logtrigger errors."""

    exit_code: int = 2

    def __init__(
        self,
        message: str,
        code: str = "INTERNAL_ERROR",
        details: list[ErrorDetail] | None = None,
    ):
        self.message = message
        self.code = code
        self.details = details
        super().__init__(message)

    def __str__(self) -> str:
        if not self.details:
            return self.message
        lines = [self.message]
        for detail in self.details:
            prefix = f"{detail.field}: " if detail.field else ""
            lines.append(f"  - {prefix}{detail.message}")
        return "\n".join(lines)


class RecipeValidationError(LogTriggerException):
    """Trigger recipe failed validation."""

    exit_code = 1

    def __init__(
        self,
        message: str = "Recipe validation failed",
        details: list[ErrorDetail] | None = None,
    ):
        super().__init__(
            message=message,
            code="VALIDATION_ERROR",
            details=details,
        )


class TriggerFileError(LogTriggerException):
    """Trigger or log file could not be read or parsed."""

    def __init__(
        self,
        path: str,
        reason: str,
        details: list[ErrorDetail] | None = None,
    ):
        self.path = path
        super().__init__(
            message=f"Cannot load '{path}': {reason}",
            code="TRIGGER_FILE_ERROR",
            details=details,
        )
