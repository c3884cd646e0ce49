"""File service — message attachments stored in MinIO, metadata in the database."""

import os
import hashlib
import logging
import tempfile
from datetime import timedelta
from typing import Optional

from minio import Minio
from minio.error import S3Error
from sqlalchemy.orm import Session
from fastapi import UploadFile

from teamchat.core.config import settings
from teamchat.core.exceptions import (
    AuthorizationError, ResourceNotFoundError, StorageError, ValidationError,
)
from teamchat.models.file_meta import FileMeta
from teamchat.models.user import User
from teamchat.services.channel_service import channel_service

logger = logging.getLogger(__name__)


class FileService:
    """Manages attachment uploads to MinIO and their metadata."""

    def __init__(self, client: Optional[Minio] = None):
        self._client = client
        self.bucket = settings.MINIO_BUCKET

    @property
    def client(self) -> Minio:
        if self._client is None:
            self._client = Minio(
                settings.MINIO_ENDPOINT,
                access_key=settings.MINIO_ACCESS_KEY,
                secret_key=settings.MINIO_SECRET_KEY,
                secure=settings.MINIO_SECURE,
            )
        return self._client

    def ensure_bucket(self) -> None:
        """Create the attachments bucket if it doesn't exist."""
        if not self.client.bucket_exists(self.bucket):
            self.client.make_bucket(self.bucket)

    async def upload_file(
        self,
        db: Session,
        upload: UploadFile,
        user: User,
        channel_id: Optional[str] = None,
    ) -> FileMeta:
        """Upload an attachment. A target channel requires write access to it.

        Raises:
            ValidationError: Empty or oversized file.
            StorageError: MinIO rejected the upload.
        """
        if channel_id:
            if channel_service.find(db, channel_id) is None:
                raise ResourceNotFoundError("Channel not found")
            if not channel_service.can_access(db, channel_id, user.roles, "write"):
                raise AuthorizationError("You do not have permission to upload to this channel")

        content = await upload.read()
        size_bytes = len(content)
        if size_bytes == 0:
            raise ValidationError("File is empty")
        if size_bytes > settings.MAX_UPLOAD_SIZE_MB * 1024 * 1024:
            raise ValidationError(f"File exceeds {settings.MAX_UPLOAD_SIZE_MB} MB limit")
        checksum = hashlib.md5(content).hexdigest()

        filename = os.path.basename(upload.filename or "untitled")
        object_key = f"files/{channel_id or 'direct'}/{checksum}/{filename}"
        content_type = upload.content_type or "application/octet-stream"

        existing = db.query(FileMeta).filter(FileMeta.object_key == object_key).first()
        if existing:
            return existing

        # Write to temp file for MinIO upload
        with tempfile.NamedTemporaryFile(delete=False) as tmp:
            tmp.write(content)
            tmp_path = tmp.name

        try:
            self.ensure_bucket()
            self.client.fput_object(self.bucket, object_key, tmp_path, content_type=content_type)
        except S3Error as e:
            raise StorageError(f"Failed to upload to MinIO: {e}")
        finally:
            os.unlink(tmp_path)

        file_meta = FileMeta(
            original_name=filename,
            object_key=object_key,
            bucket=self.bucket,
            mime_type=content_type,
            size_bytes=size_bytes,
            checksum_md5=checksum,
            uploaded_by=user.id,
            channel_id=channel_id,
        )
        db.add(file_meta)
        db.commit()
        db.refresh(file_meta)
        logger.info("Stored attachment %s (%d bytes)", object_key, size_bytes)
        return file_meta

    def get_file(self, db: Session, file_id: str, user: User) -> FileMeta:
        """Get attachment metadata; channel files require read access."""
        file = db.query(FileMeta).filter(FileMeta.id == file_id).first()
        if not file:
            raise ResourceNotFoundError("File not found")
        if file.channel_id and not channel_service.can_access(db, file.channel_id, user.roles, "read"):
            raise AuthorizationError("You do not have permission to access this file")
        return file

    def get_presigned_url(self, object_key: str, expires_minutes: int = 15) -> str:
        """Generate a presigned download URL for a MinIO object."""
        try:
            return self.client.presigned_get_object(
                self.bucket, object_key, expires=timedelta(minutes=expires_minutes)
            )
        except S3Error as e:
            raise StorageError(f"Failed to generate presigned URL: {e}")


# Singleton instance
file_service = FileService()
