"""
Routes/endpoints for the Files API
"""

from fastapi import APIRouter, File, Form, HTTPException, Query, Response, UploadFile, status

from api.files.models import FileAccessPublic, FileRecordPublic, FileRecordsPublic
from core.deps import FileCoordinatorDep

router = APIRouter(prefix="/files", tags=["File Endpoints"])


@router.post(
    "/upload",
    response_model=FileRecordPublic,
    status_code=status.HTTP_201_CREATED,
    summary="Upload a file",
)
def upload_file(
    coordinator: FileCoordinatorDep,
    file: UploadFile = File(..., description="File to upload"),
    booking_id: int | None = Form(None, description="Owning booking"),
    facility_id: int | None = Form(None, description="Owning facility"),
    uploaded_by: str = Query(
        ...,
        description="Identifier of the user uploading the file"
    ),
) -> FileRecordPublic:
    """
    Upload a file (booking contract, facility image, ...) and attach it to a
    booking and/or a facility.

    **Note:** `uploaded_by` is taken as given; the caller is responsible
    for deriving it from the authenticated user.

    **Consistency:** the object is stored before its metadata. If the
    metadata write fails the response is a 500 with `"error":
    "PartialFailureError"` and the orphaned object's `key`.

    **Example curl command:**

    ```bash
    curl -X POST "http://localhost:8000/api/v1/files/upload?uploaded_by=jsmith" \\
      -F "file=@contract.pdf;type=application/pdf" \\
      -F "booking_id=42"
    ```
    """
    return coordinator.upload(
        content=file.file,
        content_type=file.content_type,
        file_name=file.filename,
        uploaded_by=uploaded_by,
        booking_id=booking_id,
        facility_id=facility_id,
    )


@router.get(
    "/booking/{booking_id}",
    response_model=FileRecordsPublic,
    summary="List files for a booking",
)
def list_booking_files(
    coordinator: FileCoordinatorDep,
    booking_id: int,
) -> FileRecordsPublic:
    """List all files linked to a booking, oldest first."""
    files = coordinator.list_by_booking(booking_id)
    return FileRecordsPublic(data=files, total_items=len(files))


@router.get(
    "/facility/{facility_id}",
    response_model=FileRecordsPublic,
    summary="List files for a facility",
)
def list_facility_files(
    coordinator: FileCoordinatorDep,
    facility_id: int,
) -> FileRecordsPublic:
    """List all files linked to a facility, oldest first."""
    files = coordinator.list_by_facility(facility_id)
    return FileRecordsPublic(data=files, total_items=len(files))


@router.get(
    "/{file_id}",
    response_model=FileAccessPublic,
    summary="Get a signed download URL",
)
def get_file_url(
    coordinator: FileCoordinatorDep,
    file_id: int,
    ttl_minutes: int | None = Query(
        None,
        description="URL lifetime in minutes (default 15)",
    ),
) -> FileAccessPublic:
    """
    Get a time-limited URL that allows downloading the file without
    further authentication.
    """
    url = coordinator.get_access_url(file_id, ttl_minutes)
    ttl = coordinator.resolve_ttl(ttl_minutes)
    return FileAccessPublic(id=file_id, url=url, expires_in_minutes=ttl)


@router.get(
    "/{file_id}/record",
    response_model=FileRecordPublic,
    summary="Get file metadata with a download URL",
)
def get_file_record(
    coordinator: FileCoordinatorDep,
    file_id: int,
    ttl_minutes: int | None = Query(
        None,
        description="URL lifetime in minutes (default 15)",
    ),
) -> FileRecordPublic:
    """Get the file's metadata with `download_url` filled in."""
    return coordinator.get_file_with_url(file_id, ttl_minutes)


@router.delete(
    "/{file_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a file",
)
def delete_file(
    coordinator: FileCoordinatorDep,
    file_id: int,
) -> Response:
    """
    Delete a file from the bucket and then its metadata.

    If removing the object fails the metadata is left in place and the
    request can simply be repeated.
    """
    if not coordinator.delete(file_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"File {file_id} not found",
        )
    return Response(status_code=status.HTTP_204_NO_CONTENT)
