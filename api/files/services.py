"""
Services for the Files API

FileCoordinator is the only place that talks to both the blob store and
the metadata store. The two stores share no transaction, so each
operation runs its steps in a fixed order and reports a partial failure
instead of hiding it:

- upload writes the blob first and the record second; a failed record
  write leaves an orphaned blob and raises PartialFailureError.
- delete removes the blob first and the record second; a failed blob
  delete leaves the record untouched.

Nothing is retried here and no locks are taken. Concurrent callers only
rely on storage keys being unique.
"""

import io
import logging
import uuid
from datetime import datetime, timezone
from typing import BinaryIO, List

from api.files.exceptions import (
    MetadataError,
    NotFoundError,
    PartialFailureError,
    ValidationError,
)
from api.files.models import FileRecord, FileRecordPublic
from api.files.repository import FileRecordRepository
from api.files.storage import BlobStore


logger = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = "application/octet-stream"


def generate_storage_key(file_name: str) -> str:
    """Unique object key: ``<uuid4>-<original file name>``."""
    return f"{uuid.uuid4()}-{file_name}"


def _payload_size(stream: BinaryIO) -> int:
    """Bytes remaining in a seekable stream, without consuming them."""
    position = stream.tell()
    end = stream.seek(0, io.SEEK_END)
    stream.seek(position)
    return end - position


def _to_public(record: FileRecord, download_url: str | None = None) -> FileRecordPublic:
    public = FileRecordPublic.model_validate(record)
    public.download_url = download_url
    return public


class FileCoordinator:
    """Upload, sign, list and delete file attachments across both stores."""

    def __init__(
        self,
        blob_store: BlobStore,
        repository: FileRecordRepository,
        default_ttl_minutes: int = 15,
        min_ttl_minutes: int = 1,
        max_ttl_minutes: int = 7 * 24 * 60,
    ):
        self.blob_store = blob_store
        self.repository = repository
        self.default_ttl_minutes = default_ttl_minutes
        self.min_ttl_minutes = min_ttl_minutes
        self.max_ttl_minutes = max_ttl_minutes

    def upload(
        self,
        content: bytes | BinaryIO,
        content_type: str | None,
        file_name: str,
        uploaded_by: str,
        booking_id: int | None = None,
        facility_id: int | None = None,
    ) -> FileRecordPublic:
        """
        Store a file and record its metadata.

        Args:
            content: File bytes, or a seekable binary stream positioned at
                the start of the payload
            content_type: MIME type supplied by the uploader
            file_name: Original client file name, kept verbatim
            uploaded_by: Opaque identifier of the uploading user
            booking_id: Optional owning booking
            facility_id: Optional owning facility

        Returns:
            The persisted record, including its assigned id

        Raises:
            ValidationError: Empty payload, file name or uploader
            StorageWriteError: The blob write failed; nothing was recorded
            PartialFailureError: The blob was written but the record was
                not; the error carries the orphaned key
        """
        if isinstance(content, (bytes, bytearray)):
            size = len(content)
            stream = io.BytesIO(content)
        else:
            size = _payload_size(content)
            stream = content

        if size == 0:
            raise ValidationError("File payload is empty", operation="upload")
        if not file_name or not file_name.strip():
            raise ValidationError("File name is required", operation="upload")
        if not uploaded_by or not uploaded_by.strip():
            raise ValidationError("Uploader is required", operation="upload")
        content_type = content_type or DEFAULT_CONTENT_TYPE

        storage_key = generate_storage_key(file_name)
        logger.info(
            "Uploading file %s by user %s (booking=%s, facility=%s)",
            file_name, uploaded_by, booking_id, facility_id
        )

        self.blob_store.put(storage_key, stream, content_type)

        record = FileRecord(
            file_name=file_name,
            content_type=content_type,
            storage_key=storage_key,
            uploaded_at=datetime.now(timezone.utc),
            uploaded_by=uploaded_by,
            booking_id=booking_id,
            facility_id=facility_id,
        )
        try:
            self.repository.add(record)
            self.repository.flush()
            file_id = record.id
            self.repository.commit()
        except MetadataError as exc:
            logger.error(
                "Blob %s stored but metadata write failed; object is orphaned",
                storage_key
            )
            raise PartialFailureError(
                f"File stored at {storage_key} but its metadata could not be saved",
                stage="metadata",
                operation="upload",
                key=storage_key,
            ) from exc

        try:
            self.repository.refresh(record)
        except MetadataError as exc:
            # The row is committed; a retried upload would store a duplicate.
            logger.error("File %s saved but could not be reloaded", file_id)
            raise MetadataError(
                f"File {file_id} was saved but could not be reloaded",
                operation="upload",
                file_id=file_id,
                key=storage_key,
                retryable=False,
            ) from exc
        logger.info("File metadata saved with id %s", file_id)
        return _to_public(record)

    def _get_record(self, file_id: int, operation: str) -> FileRecord:
        record = self.repository.get_by_id(file_id)
        if record is None:
            logger.warning("File %s not found (%s)", file_id, operation)
            raise NotFoundError(
                f"File {file_id} not found", operation=operation, file_id=file_id
            )
        return record

    def get_file(self, file_id: int) -> FileRecordPublic:
        """Get a file record by id, without a download URL."""
        return _to_public(self._get_record(file_id, "get"))

    def resolve_ttl(self, ttl_minutes: int | None) -> int:
        """
        Apply the signed URL lifetime policy.

        None selects the default. Values below the floor (including zero)
        or above the ceiling are rejected.
        """
        if ttl_minutes is None:
            return self.default_ttl_minutes
        if ttl_minutes < self.min_ttl_minutes:
            raise ValidationError(
                f"URL lifetime must be at least {self.min_ttl_minutes} minute(s)",
                operation="get_access_url",
            )
        if ttl_minutes > self.max_ttl_minutes:
            raise ValidationError(
                f"URL lifetime must not exceed {self.max_ttl_minutes} minutes",
                operation="get_access_url",
            )
        return ttl_minutes

    def get_access_url(self, file_id: int, ttl_minutes: int | None = None) -> str:
        """
        Signed GET URL for a stored file.

        Raises:
            NotFoundError: No record with this id
            ValidationError: ttl_minutes outside the allowed window
            CredentialError: No signing credential could be resolved
        """
        record = self._get_record(file_id, "get_access_url")
        ttl = self.resolve_ttl(ttl_minutes)
        url = self.blob_store.signed_url(record.storage_key, ttl)
        logger.info("Generated signed URL for file %s, valid for %s minutes", file_id, ttl)
        return url

    def get_file_with_url(
        self, file_id: int, ttl_minutes: int | None = None
    ) -> FileRecordPublic:
        """File record with download_url populated."""
        record = self._get_record(file_id, "get_access_url")
        ttl = self.resolve_ttl(ttl_minutes)
        url = self.blob_store.signed_url(record.storage_key, ttl)
        return _to_public(record, download_url=url)

    def list_by_booking(self, booking_id: int) -> List[FileRecordPublic]:
        records = self.repository.list_by_booking(booking_id)
        logger.info("Retrieved %s files for booking %s", len(records), booking_id)
        return [_to_public(r) for r in records]

    def list_by_facility(self, facility_id: int) -> List[FileRecordPublic]:
        records = self.repository.list_by_facility(facility_id)
        logger.info("Retrieved %s files for facility %s", len(records), facility_id)
        return [_to_public(r) for r in records]

    def delete(self, file_id: int) -> bool:
        """
        Delete a file from the blob store, then its record.

        Returns:
            True if a record was deleted, False if there was nothing to delete

        Raises:
            StorageDeleteError: The blob delete failed; the record is kept
            PartialFailureError: The blob is gone but the record could not
                be removed; calling delete again finishes the job
        """
        record = self.repository.get_by_id(file_id)
        if record is None:
            logger.warning("Delete requested for non-existing file %s", file_id)
            return False

        storage_key = record.storage_key
        if not self.blob_store.delete(storage_key):
            logger.warning("Object %s for file %s was already gone", storage_key, file_id)

        try:
            self.repository.delete(record)
            self.repository.commit()
        except MetadataError as exc:
            raise PartialFailureError(
                f"Object {storage_key} deleted but metadata for file {file_id} remains",
                stage="metadata",
                operation="delete",
                file_id=file_id,
                key=storage_key,
            ) from exc

        logger.info("Deleted file %s (%s)", file_id, storage_key)
        return True

    def delete_for_booking(self, booking_id: int) -> int:
        """
        Remove every file attached to a booking, blobs included.

        Called by the booking lifecycle before the booking row is deleted;
        a database cascade alone would leave the blobs behind.
        """
        return self._delete_all(self.repository.list_by_booking(booking_id))

    def delete_for_facility(self, facility_id: int) -> int:
        """Remove every file attached to a facility, blobs included."""
        return self._delete_all(self.repository.list_by_facility(facility_id))

    def _delete_all(self, records: List[FileRecord]) -> int:
        file_ids = [r.id for r in records]
        deleted = 0
        for file_id in file_ids:
            if self.delete(file_id):
                deleted += 1
        return deleted
