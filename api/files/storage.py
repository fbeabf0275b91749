"""
Blob storage for file attachments.

S3BlobStore keeps the raw bytes under a unique key and hands out
time-limited GET URLs through an AccessGrantIssuer. Credentials for
signing are only looked up when a URL is first requested.
"""

import logging
from pathlib import Path
from typing import BinaryIO, Protocol

import boto3
import botocore.session
from boto3.exceptions import Boto3Error
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from api.files.exceptions import (
    CredentialError,
    StorageDeleteError,
    StorageError,
    StorageWriteError,
)


logger = logging.getLogger(__name__)

# Error codes S3 (and S3-compatible stores) use for a missing object
_MISSING_OBJECT_CODES = {"404", "NoSuchKey", "NotFound"}
_ACCESS_DENIED_CODES = {"403", "AccessDenied", "Forbidden"}


def _is_missing_object(exc: ClientError) -> bool:
    return exc.response.get("Error", {}).get("Code") in _MISSING_OBJECT_CODES


def _is_access_denied(exc: ClientError) -> bool:
    return exc.response.get("Error", {}).get("Code") in _ACCESS_DENIED_CODES


class BlobStore(Protocol):
    """Operations the file coordinator needs from a blob store."""

    def put(self, key: str, stream: BinaryIO, content_type: str) -> None: ...

    def delete(self, key: str) -> bool: ...

    def exists(self, key: str) -> bool: ...

    def signed_url(self, key: str, ttl_minutes: int) -> str: ...


class AccessGrantIssuer:
    """
    Produce presigned GET URLs for objects in one bucket.

    Signing credentials come from the ambient AWS credential chain
    (environment, shared config, instance or container role) and, failing
    that, from an explicit credentials file. The resolved client is cached.
    """

    def __init__(
        self,
        bucket: str,
        region: str | None = None,
        endpoint_url: str | None = None,
        credentials_file: str | None = None,
        credentials_profile: str | None = None,
        session_factory=boto3.Session,
    ):
        self.bucket = bucket
        self.region = region
        self.endpoint_url = endpoint_url
        self.credentials_file = credentials_file
        self.credentials_profile = credentials_profile
        self._session_factory = session_factory
        self._client = None

    def _resolve_session(self):
        """Return a boto3 session holding usable credentials."""
        try:
            session = self._session_factory(region_name=self.region)
            if session.get_credentials() is not None:
                logger.info("Signing URLs with ambient AWS credentials")
                return session

            if self.credentials_file:
                if not Path(self.credentials_file).is_file():
                    raise CredentialError(
                        f"Credentials file not found: {self.credentials_file}",
                        operation="sign",
                    )
                core_session = botocore.session.Session(profile=self.credentials_profile)
                core_session.set_config_variable("credentials_file", self.credentials_file)
                session = self._session_factory(
                    botocore_session=core_session, region_name=self.region
                )
                if session.get_credentials() is not None:
                    logger.info(
                        "Signing URLs with credentials from %s", self.credentials_file
                    )
                    return session
        except BotoCoreError as exc:
            raise CredentialError(
                f"Could not load signing credentials: {exc}", operation="sign"
            ) from exc

        raise CredentialError(
            "No AWS credentials available to sign download URLs", operation="sign"
        )

    def _get_client(self):
        if self._client is None:
            session = self._resolve_session()
            self._client = session.client(
                "s3",
                region_name=self.region,
                endpoint_url=self.endpoint_url,
                config=Config(signature_version="s3v4"),
            )
        return self._client

    def sign(self, key: str, ttl_minutes: int) -> str:
        """Presigned GET URL for key, valid for ttl_minutes."""
        client = self._get_client()
        try:
            url = client.generate_presigned_url(
                "get_object",
                Params={"Bucket": self.bucket, "Key": key},
                ExpiresIn=ttl_minutes * 60,
                HttpMethod="GET",
            )
        except (BotoCoreError, ClientError) as exc:
            raise CredentialError(
                f"Failed to sign URL for {key}: {exc}", operation="sign", key=key
            ) from exc
        logger.info("Signed URL for %s, valid for %s minutes", key, ttl_minutes)
        return url


class S3BlobStore:
    """BlobStore backed by an S3 (or S3-compatible) bucket."""

    def __init__(self, s3_client, bucket: str, grant_issuer: AccessGrantIssuer):
        self.client = s3_client
        self.bucket = bucket
        self.grant_issuer = grant_issuer

    def put(self, key: str, stream: BinaryIO, content_type: str) -> None:
        """
        Write a whole object. Multipart uploads are handled by boto3; the
        object is either fully present afterwards or the call raises.
        """
        logger.info("Uploading object %s to bucket %s", key, self.bucket)
        try:
            self.client.upload_fileobj(
                stream,
                self.bucket,
                key,
                ExtraArgs={"ContentType": content_type},
            )
        except (BotoCoreError, Boto3Error, ClientError, OSError) as exc:
            logger.error("Upload of %s to bucket %s failed: %s", key, self.bucket, exc)
            raise StorageWriteError(
                f"Failed to store object {key}: {exc}", operation="put", key=key
            ) from exc

    def exists(self, key: str) -> bool:
        try:
            self.client.head_object(Bucket=self.bucket, Key=key)
        except ClientError as exc:
            if _is_missing_object(exc):
                return False
            raise StorageError(
                f"Failed to look up object {key}: {exc}", operation="head", key=key
            ) from exc
        except BotoCoreError as exc:
            raise StorageError(
                f"Failed to look up object {key}: {exc}", operation="head", key=key
            ) from exc
        return True

    def delete(self, key: str) -> bool:
        """
        Delete an object.

        Returns False when the object is already gone. S3 deletes are
        silent for missing keys, so existence is checked first. Without
        s3:GetObject / s3:ListBucket the check is answered with 403; the
        delete then goes ahead and is reported as done.
        """
        try:
            self.client.head_object(Bucket=self.bucket, Key=key)
        except ClientError as exc:
            if _is_missing_object(exc):
                logger.warning("Object %s not found in bucket %s", key, self.bucket)
                return False
            if not _is_access_denied(exc):
                logger.error("Lookup of %s in bucket %s failed: %s", key, self.bucket, exc)
                raise StorageDeleteError(
                    f"Failed to look up object {key}: {exc}", operation="delete", key=key
                ) from exc
            logger.warning(
                "Lookup of %s denied in bucket %s; deleting without existence check",
                key, self.bucket
            )
        except BotoCoreError as exc:
            raise StorageDeleteError(
                f"Failed to look up object {key}: {exc}", operation="delete", key=key
            ) from exc
        try:
            self.client.delete_object(Bucket=self.bucket, Key=key)
        except (BotoCoreError, ClientError) as exc:
            logger.error("Delete of %s from bucket %s failed: %s", key, self.bucket, exc)
            raise StorageDeleteError(
                f"Failed to delete object {key}: {exc}", operation="delete", key=key
            ) from exc
        logger.info("Deleted object %s from bucket %s", key, self.bucket)
        return True

    def signed_url(self, key: str, ttl_minutes: int) -> str:
        return self.grant_issuer.sign(key, ttl_minutes)
