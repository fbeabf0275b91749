"""
Exceptions for the Files API.

Every error names the operation it came from and, where known, the file id
and storage key involved, so a caller can decide whether to retry.
"""

from fastapi import status


class FileServiceError(Exception):
    """Base class for file attachment errors."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        operation: str | None = None,
        file_id: int | None = None,
        key: str | None = None,
        retryable: bool | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.operation = operation
        self.file_id = file_id
        self.key = key
        if retryable is not None:
            self.retryable = retryable

    def to_dict(self) -> dict:
        """Serializable form used by the API error handler."""
        return {
            "detail": self.message,
            "error": type(self).__name__,
            "operation": self.operation,
            "file_id": self.file_id,
            "key": self.key,
            "retryable": self.retryable,
        }


class ValidationError(FileServiceError):
    """Malformed or empty input, e.g. an empty upload payload."""

    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundError(FileServiceError):
    """Referenced file record does not exist."""

    status_code = status.HTTP_404_NOT_FOUND


class CredentialError(FileServiceError):
    """No signing credential could be resolved for a URL request."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


class StorageError(FileServiceError):
    """A blob store operation failed."""

    status_code = status.HTTP_502_BAD_GATEWAY
    retryable = True


class StorageWriteError(StorageError):
    """Writing an object to the blob store failed."""


class StorageDeleteError(StorageError):
    """Deleting an object from the blob store failed (other than NotFound)."""


class MetadataError(FileServiceError):
    """The relational store rejected a read or a commit."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    retryable = True


class PartialFailureError(FileServiceError):
    """
    A two-step operation finished its blob step but not its metadata step.

    On upload this leaves an orphaned blob at ``key``; on delete the blob is
    already gone while the record remains, and repeating the delete is safe.
    """

    retryable = True

    def __init__(self, message: str, *, stage: str, **kwargs) -> None:
        super().__init__(message, **kwargs)
        self.stage = stage

    def to_dict(self) -> dict:
        body = super().to_dict()
        body["stage"] = self.stage
        return body
