from enum import Enum


class ErrorKind(str, Enum):
    INVALID_CONFIGURATION = "invalid_configuration"
    STORAGE_UNAVAILABLE = "storage_unavailable"
    STORAGE_FAILURE = "storage_failure"
    NOT_FOUND = "not_found"


class PriorityDBError(Exception):
    """Base class for all PriorityDB errors.

    Callers can branch on ``kind`` instead of matching message strings.
    """

    kind: ErrorKind = ErrorKind.STORAGE_FAILURE

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


class InvalidConfiguration(PriorityDBError, ValueError):
    kind = ErrorKind.INVALID_CONFIGURATION


class StorageUnavailable(PriorityDBError, OSError):
    kind = ErrorKind.STORAGE_UNAVAILABLE


class StorageFailure(PriorityDBError):
    kind = ErrorKind.STORAGE_FAILURE


class NotFound(PriorityDBError, KeyError):
    kind = ErrorKind.NOT_FOUND


MAX_SIZE_MESSAGE = "Must specify a nonzero max_size"
UNABLE_TO_OPEN_MESSAGE = "unable to open database file"
