class WorkoutLogError(Exception):
    """Base class for workout log failures."""


class InvalidArgumentError(WorkoutLogError, ValueError):
    """Raised for malformed periods such as a month outside 1-12."""


class NoDataError(WorkoutLogError):
    """Raised by callers when an export is requested for an empty report."""

    def __init__(self, message: str = "No data to export") -> None:
        super().__init__(message)


class ExportError(WorkoutLogError):
    """Raised when rendering or writing an export fails."""

    def __init__(self, reason: str) -> None:
        super().__init__(f"Export failed: {reason}")
        self.reason = reason
