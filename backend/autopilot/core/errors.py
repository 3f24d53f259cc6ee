class AutopilotError(Exception):
    error_code: str = "autopilot_error"
    status_code: int = 500

    def __init__(self, message: str, *, error_code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        if error_code is not None:
            self.error_code = error_code


class ValidationError(AutopilotError):
    """Bad input shape or range; nothing was written."""

    error_code = "validation_error"
    status_code = 400


class NotFoundError(AutopilotError):
    error_code = "not_found"
    status_code = 404


class ConflictError(AutopilotError):
    """A concurrent writer changed queue positions underneath the operation.

    The whole operation was rolled back; callers may retry it as a unit.
    """

    error_code = "conflict"
    status_code = 409


class ExternalServiceError(AutopilotError):
    error_code = "external_service_error"
    status_code = 502


class PersistenceError(AutopilotError):
    error_code = "persistence_error"
    status_code = 500
