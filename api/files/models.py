"""
Models for the Files API
"""

from typing import List
from datetime import datetime
from sqlmodel import SQLModel, Field
from pydantic import ConfigDict


class FileRecord(SQLModel, table=True):
    """
    Metadata for an attachment whose bytes live in the blob store.

    Rows are never updated; replacing a file means deleting it and
    uploading again. booking_id and facility_id reference entities owned
    by other subsystems, so there are no hard FK constraints here.
    """
    __tablename__ = "filerecord"

    id: int | None = Field(default=None, primary_key=True)
    file_name: str = Field(max_length=1024, nullable=False)
    content_type: str = Field(max_length=255, nullable=False)
    storage_key: str = Field(max_length=1100, unique=True, nullable=False)
    uploaded_at: datetime = Field(nullable=False)
    uploaded_by: str = Field(max_length=255, nullable=False)

    booking_id: int | None = Field(default=None, index=True)
    facility_id: int | None = Field(default=None, index=True)

    model_config = ConfigDict(from_attributes=True)


class FileRecordPublic(SQLModel):
    """Public file record representation"""

    id: int
    file_name: str
    content_type: str
    storage_key: str
    uploaded_at: datetime
    uploaded_by: str
    booking_id: int | None = None
    facility_id: int | None = None
    # Only populated by the URL-granting endpoint
    download_url: str | None = None

    model_config = ConfigDict(from_attributes=True)


class FileRecordsPublic(SQLModel):
    """File listing for a booking or facility"""

    data: List[FileRecordPublic]
    total_items: int


class FileAccessPublic(SQLModel):
    """Signed, time-limited download URL for a file"""

    id: int
    url: str
    expires_in_minutes: int
