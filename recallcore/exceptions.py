from typing import Optional


class RecallCoreError(Exception):
    """Base exception for recallcore errors."""

    def __init__(
        self, message: str, original_exception: Optional[Exception] = None
    ):
        super().__init__(message)
        self.original_exception = original_exception


class StorageError(RecallCoreError):
    """Base exception for key-value storage errors."""

    pass


class StorageUnavailableError(StorageError):
    """Raised when the persistent store cannot be opened or written."""

    pass


class StorageQuotaExceededError(StorageError):
    """Raised when the persistent store refuses a write for lack of space."""

    pass


class SchemaInitializationError(StorageError):
    """Raised for errors during schema setup."""

    pass


class MarshallingError(RecallCoreError):
    """Indicates an error during data conversion between application models
    and stored JSON."""

    pass


class MigrationError(RecallCoreError):
    """Raised when a stored payload cannot be brought to the current schema."""

    pass


class CardOperationError(RecallCoreError):
    """Raised for errors during card operations."""

    pass


class PackOperationError(RecallCoreError):
    """Raised for errors during pack operations."""

    pass


class ReviewOperationError(RecallCoreError):
    """Indicates an error while recording a review."""

    pass


class RemoteApiError(RecallCoreError):
    """Raised when the remote flashcard API fails or is unreachable."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        original_exception: Optional[Exception] = None,
    ):
        super().__init__(message, original_exception=original_exception)
        self.status_code = status_code


class SessionNotReadyError(RemoteApiError):
    """Raised when a remote operation is attempted without a session id."""

    pass
