"""Domain errors raised below the HTTP layer.

Each error carries the status code the request boundary answers with;
``main.py`` turns them into the JSON envelope.
"""


class TaskError(Exception):
    status_code = 500

    def __init__(self, message: str, status_code: int = None) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ValidationError(TaskError):
    status_code = 400

    def __init__(self, errors) -> None:
        if isinstance(errors, str):
            errors = [errors]
        self.errors = list(errors)
        super().__init__("; ".join(self.errors))


class NotFoundError(TaskError):
    status_code = 404


class ConflictError(TaskError):
    """Illegal parent/child relationship (self-parent or cycle)."""
    status_code = 400


class UpstreamError(TaskError):
    """The text generator failed or replied with something unusable."""
    status_code = 500


class InternalError(TaskError):
    status_code = 500
