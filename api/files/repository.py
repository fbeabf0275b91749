"""
Relational persistence for file records.

Add and delete are staged on the session; nothing reaches the database
until commit(). The repository has no knowledge of the blob store.
"""

import logging
from typing import List
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select, col

from api.files.exceptions import MetadataError
from api.files.models import FileRecord


logger = logging.getLogger(__name__)


class FileRecordRepository:
    """CRUD over FileRecord plus lookup by owning booking or facility."""

    def __init__(self, session: Session):
        self.session = session

    def get_by_id(self, file_id: int) -> FileRecord | None:
        try:
            return self.session.get(FileRecord, file_id)
        except SQLAlchemyError as exc:
            raise MetadataError(
                f"Failed to load file record {file_id}",
                operation="get",
                file_id=file_id,
            ) from exc

    def list_by_booking(self, booking_id: int) -> List[FileRecord]:
        """Files attached to a booking, in insertion order."""
        return self._list(
            select(FileRecord)
            .where(FileRecord.booking_id == booking_id)
            .order_by(col(FileRecord.id)),
            operation="list_by_booking",
        )

    def list_by_facility(self, facility_id: int) -> List[FileRecord]:
        """Files attached to a facility, in insertion order."""
        return self._list(
            select(FileRecord)
            .where(FileRecord.facility_id == facility_id)
            .order_by(col(FileRecord.id)),
            operation="list_by_facility",
        )

    def _list(self, statement, operation: str) -> List[FileRecord]:
        try:
            return list(self.session.exec(statement).all())
        except SQLAlchemyError as exc:
            raise MetadataError(
                "Failed to list file records", operation=operation
            ) from exc

    def add(self, record: FileRecord) -> None:
        self.session.add(record)

    def delete(self, record: FileRecord) -> None:
        self.session.delete(record)

    def flush(self) -> None:
        """Write staged changes inside the open transaction, assigning ids."""
        try:
            self.session.flush()
        except SQLAlchemyError as exc:
            logger.error("Flush of file metadata failed: %s", exc)
            self.session.rollback()
            raise MetadataError("Failed to write file metadata") from exc

    def commit(self) -> None:
        """
        Apply all staged changes in one database transaction.

        On failure the session is rolled back so it stays usable for the
        next request, and MetadataError is raised.
        """
        try:
            self.session.commit()
        except SQLAlchemyError as exc:
            logger.error("Commit of file metadata failed: %s", exc)
            self.session.rollback()
            raise MetadataError("Failed to commit file metadata") from exc

    def refresh(self, record: FileRecord) -> None:
        try:
            self.session.refresh(record)
        except SQLAlchemyError as exc:
            raise MetadataError(
                "Failed to reload file record",
                operation="refresh",
                file_id=record.id,
            ) from exc
