"""
Exceptions raised by the scheduling core
"""


class SchedulerError(Exception):
    """Base exception for the scheduling core"""

    def __init__(self, message: str, error_code: str | None = None):
        self.message = message
        self.error_code = error_code
        super().__init__(self.message)


class InvalidConfigurationError(SchedulerError):
    """Raised when a work-hour rule or calendar event cannot be used"""

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        if field:
            message = f"Invalid configuration for field '{field}': {message}"
        super().__init__(message, "INVALID_CONFIGURATION")


class SchedulingRunError(SchedulerError):
    """Raised when a whole scheduling run fails outside the algorithms"""

    def __init__(self, team_id: int, message: str):
        self.team_id = team_id
        full_message = f"Scheduling failed for team {team_id}: {message}"
        super().__init__(full_message, "SCHEDULING_FAILED")
