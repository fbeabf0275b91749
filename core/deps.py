"""
Define functions/aliases for dependency injection
"""
from collections.abc import Generator
from functools import lru_cache
from typing import Annotated, TypeAlias
from sqlmodel import Session
from fastapi import Depends
import boto3

from core.config import get_settings
from core.db import get_engine
from api.files.repository import FileRecordRepository
from api.files.services import FileCoordinator
from api.files.storage import AccessGrantIssuer, S3BlobStore

# Define db dependency
def get_db() -> Generator[Session, None, None]:
  with Session(get_engine()) as session:
    yield session

def get_s3_client():
  settings = get_settings()
  return boto3.client(
    "s3",
    region_name=settings.AWS_REGION,
    endpoint_url=settings.AWS_ENDPOINT_URL,
  )

@lru_cache
def get_grant_issuer() -> AccessGrantIssuer:
  # One issuer per process so resolved signing credentials are reused
  settings = get_settings()
  return AccessGrantIssuer(
    bucket=settings.FILE_STORAGE_BUCKET,
    region=settings.AWS_REGION,
    endpoint_url=settings.AWS_ENDPOINT_URL,
    credentials_file=settings.FILE_STORAGE_CREDENTIALS_FILE,
    credentials_profile=settings.FILE_STORAGE_CREDENTIALS_PROFILE,
  )

SessionDep: TypeAlias = Annotated[Session, Depends(get_db)]

def get_blob_store(
  s3_client=Depends(get_s3_client),
  grant_issuer: AccessGrantIssuer = Depends(get_grant_issuer),
) -> S3BlobStore:
  return S3BlobStore(s3_client, get_settings().FILE_STORAGE_BUCKET, grant_issuer)

def get_file_coordinator(
  session: SessionDep,
  blob_store: S3BlobStore = Depends(get_blob_store),
) -> FileCoordinator:
  settings = get_settings()
  return FileCoordinator(
    blob_store=blob_store,
    repository=FileRecordRepository(session),
    default_ttl_minutes=settings.SIGNED_URL_DEFAULT_TTL_MINUTES,
    min_ttl_minutes=settings.SIGNED_URL_MIN_TTL_MINUTES,
    max_ttl_minutes=settings.SIGNED_URL_MAX_TTL_MINUTES,
  )

FileCoordinatorDep: TypeAlias = Annotated[FileCoordinator, Depends(get_file_coordinator)]
