"""
S3 storage backend implementation using boto3.

Supports AWS S3 and S3-compatible services (MinIO, Ceph, ...). Objects live
flat in one bucket:
- s3://{bucket}/{file_id}       - content
- s3://{bucket}/{file_id}.json  - metadata
"""

import logging
import os
import threading
from enum import Enum
from pathlib import Path
from typing import Optional, Union

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from filestore.common.errors import ConfigurationError, FileStoreError, NotFoundError, StorageBackendError
from filestore.common.logging_config import PerformanceTracker
from filestore.common.metrics import remote_download_duration_seconds, track_storage_operation
from filestore.storage.adapter import RemoteStorageAdapter
from filestore.storage.metadata import FileMetadata, compute_md5, now_ms

logger = logging.getLogger(__name__)

NOT_FOUND_CODES = {"404", "NoSuchKey", "NotFound", "NoSuchBucket"}


class ClientState(str, Enum):
    """Lifecycle of the lazily created S3 client."""
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    FAILED = "failed"


def translate_error(err: Exception, context: str) -> FileStoreError:
    """
    Map a boto error onto the file store taxonomy.

    Args:
        err: Exception raised by boto3/botocore
        context: Short description of the failed call

    Returns:
        NotFoundError for missing objects, StorageBackendError otherwise
    """
    if isinstance(err, FileStoreError):
        return err

    if isinstance(err, ClientError):
        error = err.response.get("Error", {})
        code = str(error.get("Code", ""))
        status = err.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
        if code in NOT_FOUND_CODES or status == 404:
            return NotFoundError(f"No such file ({context})")
        return StorageBackendError(f"S3 error during {context}: {code} {err}", code=code or None)

    if isinstance(err, BotoCoreError):
        return StorageBackendError(f"S3 transport error during {context}: {err}")

    return StorageBackendError(f"Unexpected error during {context}: {err}")


class S3Storage(RemoteStorageAdapter):
    """
    S3/S3-compatible storage implementation.

    The boto3 client is created on first use. A failed construction is
    permanent for the life of the process.
    """

    name = "s3"

    def __init__(
        self,
        bucket: str,
        endpoint_url: Optional[str] = None,
        region: str = "us-east-1",
        access_key_id: Optional[str] = None,
        secret_access_key: Optional[str] = None,
        create_bucket: bool = False,
        connect_timeout: int = 5,
        read_timeout: int = 30,
        max_attempts: int = 3,
    ):
        """
        Initialize S3 storage.

        Args:
            bucket: S3 bucket name
            endpoint_url: Custom endpoint for S3-compatible services
            region: AWS region
            access_key_id: AWS access key ID (default credential chain if None)
            secret_access_key: AWS secret access key
            create_bucket: Create the bucket on first use if missing
            connect_timeout: Connect timeout in seconds per call
            read_timeout: Read timeout in seconds per call
            max_attempts: Retry budget handed to botocore
        """
        if not bucket:
            raise ConfigurationError("S3 bucket required. Set S3_BUCKET or pass bucket.")

        self.bucket = bucket
        self.endpoint_url = endpoint_url
        self.region = region
        self.access_key_id = access_key_id
        self.secret_access_key = secret_access_key
        self.create_bucket = create_bucket
        self._config = Config(
            retries={"max_attempts": max_attempts, "mode": "standard"},
            connect_timeout=connect_timeout,
            read_timeout=read_timeout,
        )

        self._state = ClientState.UNINITIALIZED
        self._state_lock = threading.Lock()
        self._client = None
        self._failure: Optional[Exception] = None

    @property
    def state(self) -> ClientState:
        return self._state

    def _get_client(self):
        """
        Return the bucket-bound client, creating it once.

        Raises:
            ConfigurationError: If the client could not be constructed, now or
                on an earlier attempt
        """
        if self._state is ClientState.READY:
            return self._client

        with self._state_lock:
            if self._state is ClientState.READY:
                return self._client
            if self._state is ClientState.FAILED:
                raise ConfigurationError(
                    f"S3 client unavailable: {self._failure}") from self._failure

            self._state = ClientState.INITIALIZING
            logger.debug(
                f"Connecting to S3: bucket={self.bucket}, endpoint={self.endpoint_url or 'aws'}")
            try:
                client = boto3.client(
                    "s3",
                    endpoint_url=self.endpoint_url,
                    region_name=self.region,
                    aws_access_key_id=self.access_key_id,
                    aws_secret_access_key=self.secret_access_key,
                    config=self._config,
                )
                if self.create_bucket:
                    self._ensure_bucket(client)
            except Exception as e:
                self._state = ClientState.FAILED
                self._failure = e
                logger.error(f"Failed to initialize S3 storage: {e}")
                raise ConfigurationError(f"S3 client unavailable: {e}") from e

            self._client = client
            self._state = ClientState.READY
            logger.info(f"S3 storage initialized: bucket={self.bucket}")
            return client

    def _ensure_bucket(self, client) -> None:
        try:
            client.head_bucket(Bucket=self.bucket)
            return
        except ClientError as e:
            code = str(e.response.get("Error", {}).get("Code", ""))
            if code not in NOT_FOUND_CODES:
                raise

        logger.info(f"Creating development bucket: {self.bucket}")
        if self.region == "us-east-1":
            client.create_bucket(Bucket=self.bucket)
        else:
            client.create_bucket(
                Bucket=self.bucket,
                CreateBucketConfiguration={"LocationConstraint": self.region},
            )

    @staticmethod
    def _content_key(file_id: str) -> str:
        return file_id

    @staticmethod
    def _meta_key(file_id: str) -> str:
        return f"{file_id}.json"

    def _require(self, file_id: str) -> None:
        if not self.exists(file_id):
            raise NotFoundError(f"File not found: {file_id}", file_id=file_id)

    def exists(self, file_id: str) -> bool:
        """Check if the metadata object exists."""
        client = self._get_client()
        try:
            client.head_object(Bucket=self.bucket, Key=self._meta_key(file_id))
            return True
        except (ClientError, BotoCoreError) as e:
            err = translate_error(e, f"exists({file_id})")
            if isinstance(err, NotFoundError):
                return False
            raise err from e

    def get_metadata(self, file_id: str) -> FileMetadata:
        """Load the metadata object."""
        self._require(file_id)
        return self._read_meta(file_id)

    @track_storage_operation("s3", "upload")
    def upload(
        self,
        file_id: str,
        source_path: Union[str, Path],
        original_name: str,
        mime: str,
        size: Optional[int] = None,
    ) -> FileMetadata:
        """Stream a staged file to S3, then store its metadata."""
        client = self._get_client()
        source_path = Path(source_path)

        logger.debug(f"Uploading {source_path} as {file_id} (declared size {size})")

        metadata = FileMetadata(
            id=file_id,
            original_name=original_name,
            mime=mime,
            size=source_path.stat().st_size,
            iat=now_ms(),
            md5=compute_md5(source_path),
        )

        try:
            client.upload_file(
                str(source_path),
                self.bucket,
                self._content_key(file_id),
                ExtraArgs={"ContentType": mime or "application/octet-stream"},
            )
        except (ClientError, BotoCoreError) as e:
            raise translate_error(e, f"upload({file_id})") from e

        self._write_meta(client, metadata)
        return metadata

    @track_storage_operation("s3", "download")
    def download_to(self, file_id: str, dest_path: Union[str, Path]) -> None:
        """Download content to ``dest_path`` and stamp it with the ingestion time."""
        logger.debug(f"download_to({file_id})")
        self._require(file_id)

        client = self._get_client()
        metadata = self._read_meta(file_id)
        dest_path = Path(dest_path)

        with PerformanceTracker("s3_download", logger, file_id=file_id) as tracker:
            try:
                dest_path.unlink(missing_ok=True)
                client.download_file(self.bucket, self._content_key(file_id), str(dest_path))
            except (ClientError, BotoCoreError) as e:
                raise translate_error(e, f"download({file_id})") from e
        remote_download_duration_seconds.observe(tracker.duration_seconds)

        os.utime(dest_path, (metadata.iat_seconds, metadata.iat_seconds))

    @track_storage_operation("s3", "copy")
    def copy(self, file_id: str, new_file_id: str) -> FileMetadata:
        """Write new metadata, then copy the content object server-side."""
        self._require(file_id)

        client = self._get_client()
        old_meta = self._read_meta(file_id)
        # Server-side copy keeps the bytes, so the digest carries over.
        new_meta = FileMetadata(
            id=new_file_id,
            original_name=old_meta.original_name,
            mime=old_meta.mime,
            size=old_meta.size,
            iat=now_ms(),
            md5=old_meta.md5,
        )
        self._write_meta(client, new_meta)

        try:
            client.copy(
                {"Bucket": self.bucket, "Key": self._content_key(file_id)},
                self.bucket,
                self._content_key(new_file_id),
            )
        except (ClientError, BotoCoreError) as e:
            raise translate_error(e, f"copy({file_id} -> {new_file_id})") from e

        return new_meta

    @track_storage_operation("s3", "delete")
    def delete(self, file_id: str) -> None:
        """Delete the metadata object, then the content object."""
        logger.debug(f"delete({file_id})")
        self._require(file_id)

        client = self._get_client()
        try:
            client.delete_object(Bucket=self.bucket, Key=self._meta_key(file_id))
            client.delete_object(Bucket=self.bucket, Key=self._content_key(file_id))
        except (ClientError, BotoCoreError) as e:
            err = translate_error(e, f"delete({file_id})")
            if isinstance(err, NotFoundError):
                logger.debug(f"Object already gone while deleting {file_id}")
                return
            raise err from e

    # ---

    def _read_meta(self, file_id: str) -> FileMetadata:
        client = self._get_client()
        try:
            response = client.get_object(Bucket=self.bucket, Key=self._meta_key(file_id))
            payload = response["Body"].read()
        except (ClientError, BotoCoreError) as e:
            raise translate_error(e, f"read metadata({file_id})") from e

        return FileMetadata.from_json(payload)

    def _write_meta(self, client, metadata: FileMetadata) -> None:
        try:
            client.put_object(
                Bucket=self.bucket,
                Key=self._meta_key(metadata.id),
                Body=metadata.to_json().encode("utf-8"),
                ContentType="application/json",
            )
        except (ClientError, BotoCoreError) as e:
            raise translate_error(e, f"write metadata({metadata.id})") from e
