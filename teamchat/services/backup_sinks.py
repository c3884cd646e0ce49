"""Backup destinations: MinIO object storage and a GitHub repository."""

import base64
import enum
import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

import httpx
from minio import Minio
from minio.error import S3Error

from teamchat.core.config import settings
from teamchat.core.exceptions import SinkError

logger = logging.getLogger(__name__)


class BackupMethod(str, enum.Enum):
    object_storage = "object_storage"
    github = "github"
    both = "both"


@dataclass(frozen=True)
class BackupArtifact:
    """A snapshot file written to local disk, awaiting upload."""

    timestamp: str
    path: str
    filename: str
    size_bytes: int

    def read_bytes(self) -> bytes:
        with open(self.path, "rb") as fh:
            return fh.read()

    def exists(self) -> bool:
        return os.path.exists(self.path)


class BackupSink(ABC):
    """One remote destination for backup artifacts."""

    name: str = ""
    label: str = ""
    missing_config_message: str = ""

    @property
    @abstractmethod
    def is_configured(self) -> bool:
        ...

    @abstractmethod
    def upload(self, artifact: BackupArtifact) -> str:
        """Upload the artifact and return the remote identifier.

        Raises:
            SinkError: If the destination is unconfigured or rejects the upload.
        """

    def describe(self) -> dict:
        return {"configured": self.is_configured}


class ObjectStorageSink(BackupSink):
    """Stores artifacts in a MinIO bucket under ``BACKUP_FOLDER``."""

    name = "object_storage"
    label = "Object storage"
    missing_config_message = "Missing MINIO_ENDPOINT, MINIO_ACCESS_KEY, MINIO_SECRET_KEY or BACKUP_BUCKET"

    def __init__(
        self,
        client: Optional[Minio] = None,
        bucket: Optional[str] = None,
        folder: Optional[str] = None,
    ):
        self._client = client
        self.bucket = bucket or settings.BACKUP_BUCKET
        self.folder = (folder if folder is not None else settings.BACKUP_FOLDER).strip("/")

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

    @property
    def is_configured(self) -> bool:
        if self._client is not None:
            return bool(self.bucket)
        return bool(
            settings.MINIO_ENDPOINT and settings.MINIO_ACCESS_KEY
            and settings.MINIO_SECRET_KEY and self.bucket
        )

    def object_name(self, artifact: BackupArtifact) -> str:
        return f"{self.folder}/{artifact.filename}" if self.folder else artifact.filename

    def upload(self, artifact: BackupArtifact) -> str:
        if not self.is_configured:
            raise SinkError(self.missing_config_message)
        object_name = self.object_name(artifact)
        try:
            if not self.client.bucket_exists(self.bucket):
                self.client.make_bucket(self.bucket)
            result = self.client.fput_object(
                self.bucket,
                object_name,
                artifact.path,
                content_type="application/json",
            )
        except S3Error as e:
            raise SinkError(f"Object storage backup failed: {e}")
        logger.info("Uploaded %s to %s/%s", artifact.filename, self.bucket, object_name)
        return getattr(result, "object_name", None) or object_name

    def describe(self) -> dict:
        return {"configured": self.is_configured, "bucket": self.bucket, "folder": self.folder}


class GitHubSink(BackupSink):
    """Commits artifacts into a repository through the contents API."""

    name = "github"
    label = "GitHub"
    missing_config_message = "Missing GITHUB_TOKEN or GITHUB_REPO"

    def __init__(
        self,
        token: Optional[str] = None,
        repo: Optional[str] = None,
        path: Optional[str] = None,
        api_url: Optional[str] = None,
        http_client: Optional[httpx.Client] = None,
    ):
        self.token = token if token is not None else settings.GITHUB_TOKEN
        self.repo = repo if repo is not None else settings.GITHUB_REPO
        self.path = (path if path is not None else settings.GITHUB_BACKUP_PATH).strip("/")
        self.api_url = (api_url or settings.GITHUB_API_URL).rstrip("/")
        self.http_client = http_client
        self.timeout = httpx.Timeout(30.0, connect=10.0)

    @property
    def is_configured(self) -> bool:
        return bool(self.token and self.repo and "/" in self.repo)

    def _headers(self) -> dict:
        return {
            "Accept": "application/vnd.github+json",
            "Authorization": f"Bearer {self.token}",
            "User-Agent": "teamchat-backup",
        }

    def _contents_url(self, artifact: BackupArtifact) -> str:
        file_path = f"{self.path}/{artifact.filename}" if self.path else artifact.filename
        return f"{self.api_url}/repos/{self.repo}/contents/{file_path}"

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            return response.json().get("message", response.text)
        except ValueError:
            return response.text

    def _put(self, client: httpx.Client, artifact: BackupArtifact) -> str:
        url = self._contents_url(artifact)
        body = {
            "message": f"TeamChat Backup: {artifact.filename}",
            "content": base64.b64encode(artifact.read_bytes()).decode("ascii"),
            "committer": {
                "name": settings.GITHUB_COMMITTER_NAME,
                "email": settings.GITHUB_COMMITTER_EMAIL,
            },
        }

        # create-or-update: an existing file needs its current sha
        existing = client.get(url, headers=self._headers())
        if existing.status_code == 200:
            body["sha"] = existing.json().get("sha")
        elif existing.status_code != 404:
            raise SinkError(f"GitHub backup failed: {self._error_message(existing)}")

        response = client.put(url, headers=self._headers(), json=body)
        if response.status_code >= 400:
            raise SinkError(f"GitHub backup failed: {self._error_message(response)}")
        return (response.json().get("content") or {}).get("sha") or "success"

    def upload(self, artifact: BackupArtifact) -> str:
        if not self.is_configured:
            raise SinkError(self.missing_config_message)
        try:
            if self.http_client is not None:
                sha = self._put(self.http_client, artifact)
            else:
                with httpx.Client(timeout=self.timeout) as client:
                    sha = self._put(client, artifact)
        except httpx.HTTPError as e:
            raise SinkError(f"GitHub backup failed: {e}")
        logger.info("Committed %s to %s (%s)", artifact.filename, self.repo, sha)
        return sha

    def describe(self) -> dict:
        return {"configured": self.is_configured, "repository": self.repo}


def sinks_for(method: BackupMethod, object_storage: BackupSink, github: BackupSink) -> list:
    """Sinks requested by ``method``, in upload order."""
    method = BackupMethod(method)
    if method == BackupMethod.object_storage:
        return [object_storage]
    if method == BackupMethod.github:
        return [github]
    return [object_storage, github]
