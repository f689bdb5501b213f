"""Custom exceptions for Imitator Runner."""


class ImitatorRunnerException(Exception):
    """Base exception for all Imitator Runner exceptions."""

    status_code = 400


class ValidationError(ImitatorRunnerException):
    """Raised when a run or download request is missing required input."""

    pass


class JobError(ImitatorRunnerException):
    """Raised when a model failure aborts the whole job."""

    def __init__(self, message: str, prefix: str = None):
        super().__init__(message)
        self.prefix = prefix


class FileSystemError(ImitatorRunnerException):
    """Raised when placing, archiving or reading job files fails."""

    pass


class ForbiddenError(ImitatorRunnerException):
    """Raised when a requested path escapes the storage root."""

    status_code = 403


class NotFoundError(ImitatorRunnerException):
    """Raised when a job or file does not exist."""

    status_code = 404
