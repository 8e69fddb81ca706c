"""
Error Taxonomy

Exceptions raised by the presence directory and room coordinator. Each
carries the error code sent back to the originating client.
"""

from contextlib import contextmanager


class ChatError(Exception):
    """Base class for errors reported back to a single connection."""

    code = "CHAT_ERROR"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFound(ChatError):
    """A referenced room or user does not exist."""

    code = "NOT_FOUND"


class AlreadyExists(ChatError):
    """A room with the requested id already exists."""

    code = "ALREADY_EXISTS"


class InvalidInput(ChatError):
    """An incoming event is malformed or misses a required field."""

    code = "INVALID_INPUT"


class StorageFailure(ChatError):
    """The underlying store raised while serving a request."""

    code = "STORAGE_FAILURE"


class DuplicateConnection(ChatError):
    """A connection id was registered twice."""

    code = "DUPLICATE_CONNECTION"


@contextmanager
def storage_errors(operation: str):
    """
    Re-raise store exceptions as StorageFailure.

    ChatError subclasses pass through unchanged.
    """
    try:
        yield
    except ChatError:
        raise
    except Exception as e:
        raise StorageFailure(f"{operation} failed: {e}") from e
