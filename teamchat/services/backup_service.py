"""Backup orchestrator — snapshot the database and ship it to one or two sinks.

A run writes one JSON snapshot to ``BACKUP_TEMP_DIR``, uploads it to the
requested sinks concurrently, removes the local file and notifies admins.
With ``both`` the run succeeds when at least one sink accepted the artifact;
any sink failure still produces a failure notification.
"""

import json
import logging
import os
import platform
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, Any, List, Optional

from sqlalchemy import inspect
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from teamchat.core.config import settings
from teamchat.core.exceptions import SinkError, SnapshotError
from teamchat.db.session import SessionLocal
from teamchat.models.channel import Channel
from teamchat.models.message import Message
from teamchat.models.role import Role
from teamchat.models.user import User
from teamchat.services.backup_sinks import (
    BackupArtifact, BackupMethod, BackupSink, GitHubSink, ObjectStorageSink, sinks_for,
)
from teamchat.services.cache_service import cache_service
from teamchat.services.notification_service import NotificationKind, Notifier, admin_notifier

logger = logging.getLogger(__name__)

SNAPSHOT_VERSION = "1.0"
SNAPSHOT_TABLES = (("users", User), ("roles", Role), ("channels", Channel), ("messages", Message))
LAST_BACKUP_KEY = "backup:last"
MAX_RETRY_DELAY_MS = 30000


def backup_delay_ms(attempt: int) -> int:
    """Delay after failed attempt ``attempt`` (1-based): 1s, 2s, 4s ... capped at 30s."""
    return min(1000 * 2 ** (attempt - 1), MAX_RETRY_DELAY_MS)


@dataclass(frozen=True)
class SinkResult:
    sink: str
    success: bool
    detail: str  # remote id on success, error message on failure


@dataclass
class BackupOutcome:
    success: bool
    method: BackupMethod
    duration_ms: int
    timestamp: str
    message: str
    sink_results: List[SinkResult] = field(default_factory=list)
    size_bytes: Optional[int] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "message": self.message,
            "error": self.error,
            "details": {
                "timestamp": self.timestamp,
                "method": self.method.value,
                "file_size": self.size_bytes,
                "duration": self.duration_ms,
                "sinks": [
                    {"sink": r.sink, "success": r.success, "detail": r.detail}
                    for r in self.sink_results
                ],
            },
        }


def _row_to_dict(obj) -> Dict[str, Any]:
    row = {}
    for column in inspect(obj).mapper.column_attrs:
        value = getattr(obj, column.key)
        if isinstance(value, datetime):
            value = value.isoformat()
        elif hasattr(value, "value"):  # enums
            value = value.value
        row[column.key] = value
    return row


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class BackupService:
    """Runs backups against injectable sinks, notifier and clock."""

    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        object_storage: Optional[BackupSink] = None,
        github: Optional[BackupSink] = None,
        notifier: Optional[Notifier] = None,
        sleep: Callable[[float], None] = time.sleep,
        temp_dir: Optional[str] = None,
        cache=cache_service,
    ):
        self.session_factory = session_factory
        self.object_storage = object_storage or ObjectStorageSink()
        self.github = github or GitHubSink()
        self.notifier = notifier or admin_notifier
        self.sleep = sleep
        self.temp_dir = temp_dir or settings.BACKUP_TEMP_DIR
        self.cache = cache

    # ---- Snapshot ----

    def snapshot(self) -> BackupArtifact:
        """Dump users, roles, channels and messages into one JSON file.

        Raises:
            SnapshotError: If any table cannot be read or the file cannot be
                written. A partially written file is removed first.
        """
        os.makedirs(self.temp_dir, exist_ok=True)
        timestamp = _now_iso()
        filename = f"{settings.BACKUP_FILE_PREFIX}-{timestamp.replace(':', '-')}.json"
        path = os.path.join(self.temp_dir, filename)

        db = self.session_factory()
        try:
            tables = {}
            for table_name, model in SNAPSHOT_TABLES:
                try:
                    tables[table_name] = [_row_to_dict(row) for row in db.query(model).all()]
                except SQLAlchemyError as e:
                    raise SnapshotError(f"{table_name.capitalize()} backup failed: {e}")

            with open(path, "w", encoding="utf-8") as fh:
                json.dump(
                    {"timestamp": timestamp, "version": SNAPSHOT_VERSION, "tables": tables},
                    fh, indent=2, default=str,
                )
        except (SnapshotError, OSError, TypeError, ValueError) as e:
            if os.path.exists(path):
                os.unlink(path)
            if isinstance(e, SnapshotError):
                raise
            raise SnapshotError(f"Database dump failed: {e}")
        finally:
            db.close()

        artifact = BackupArtifact(
            timestamp=timestamp, path=path, filename=filename, size_bytes=os.path.getsize(path),
        )
        logger.info("Database dump created: %s (%.2f KB)", filename, artifact.size_bytes / 1024)
        return artifact

    # ---- Upload ----

    def upload_to(self, sink: BackupSink, artifact: BackupArtifact) -> SinkResult:
        """Upload to one sink; failures become a failed ``SinkResult``."""
        try:
            remote_id = sink.upload(artifact)
        except SinkError as e:
            logger.error("%s backup failed: %s", sink.label, e.message)
            return SinkResult(sink.name, False, e.message)
        except Exception as e:
            logger.exception("%s backup failed unexpectedly", sink.label)
            return SinkResult(sink.name, False, str(e) or e.__class__.__name__)
        logger.info("%s backup completed: %s", sink.label, remote_id)
        return SinkResult(sink.name, True, str(remote_id))

    def _labels(self) -> Dict[str, str]:
        return {self.object_storage.name: self.object_storage.label, self.github.name: self.github.label}

    # ---- Orchestration ----

    def perform_backup(self, method: BackupMethod = BackupMethod.both) -> BackupOutcome:
        """Run one backup. Never raises; failures are reported in the outcome."""
        started = time.monotonic()
        method = BackupMethod(method)
        artifact: Optional[BackupArtifact] = None
        logger.info("Starting backup process (method: %s)", method.value)

        try:
            artifact = self.snapshot()
            sinks = sinks_for(method, self.object_storage, self.github)
            with ThreadPoolExecutor(max_workers=len(sinks), thread_name_prefix="backup-sink") as pool:
                results = list(pool.map(lambda s: self.upload_to(s, artifact), sinks))
        except Exception as e:
            error = e.message if isinstance(e, SnapshotError) else str(e)
            if not isinstance(e, SnapshotError):
                logger.exception("Backup failed unexpectedly")
            outcome = BackupOutcome(
                success=False,
                method=method,
                duration_ms=int((time.monotonic() - started) * 1000),
                timestamp=_now_iso(),
                message=f"Backup failed: {error}",
                error=error,
            )
            logger.error(outcome.message)
            self.notifier.notify(NotificationKind.backup_failure, error)
            self._record(outcome)
            return outcome
        finally:
            if artifact is not None and artifact.exists():
                os.unlink(artifact.path)

        labels = self._labels()
        summary = ", ".join(
            f"{labels.get(r.sink, r.sink)}: {r.detail if r.success else 'FAILED - ' + r.detail}"
            for r in results
        )
        failures = [r for r in results if not r.success]
        succeeded = not failures or (method == BackupMethod.both and len(failures) < len(results))
        duration_ms = int((time.monotonic() - started) * 1000)

        outcome = BackupOutcome(
            success=succeeded,
            method=method,
            duration_ms=duration_ms,
            timestamp=_now_iso(),
            size_bytes=artifact.size_bytes,
            sink_results=results,
            message=(
                f"Backup completed with errors: {summary}" if failures
                else f"Backup completed successfully: {summary}"
            ),
            error=failures[-1].detail if failures else None,
        )

        if failures:
            self.notifier.notify(NotificationKind.backup_failure, outcome.error)
        else:
            self.notifier.notify(
                NotificationKind.backup_success,
                f"{summary} ({artifact.size_bytes / 1024:.2f} KB, {duration_ms}ms)",
            )
        logger.info("Backup process completed in %sms (success=%s)", duration_ms, succeeded)
        self._record(outcome)
        return outcome

    def perform_backup_with_retry(
        self, method: BackupMethod = BackupMethod.both, max_retries: int = 3
    ) -> BackupOutcome:
        """Retry failed runs with exponential backoff; return the first success or the last failure."""
        attempts = max(1, int(max_retries))
        outcome = None
        for attempt in range(1, attempts + 1):
            logger.info("Backup attempt %d/%d", attempt, attempts)
            outcome = self.perform_backup(method)
            if outcome.success:
                if attempt > 1:
                    logger.info("Backup succeeded on attempt %d", attempt)
                return outcome
            if attempt < attempts:
                delay = backup_delay_ms(attempt)
                logger.warning("Backup failed, retrying in %dms", delay)
                self.sleep(delay / 1000)
        logger.error("All %d backup attempts failed", attempts)
        return outcome

    # ---- Reporting ----

    def _record(self, outcome: BackupOutcome) -> None:
        try:
            self.cache.set_json(LAST_BACKUP_KEY, outcome.to_dict(), ttl_seconds=30 * 24 * 3600)
        except Exception:
            logger.exception("Could not record backup outcome")

    def status(self) -> Dict[str, Any]:
        last = self.cache.get_json(LAST_BACKUP_KEY)
        return {
            "last_backup": last,
            "object_storage": self.object_storage.describe(),
            "github": self.github.describe(),
            "schedule": {
                "enabled": settings.BACKUP_SCHEDULE_ENABLED,
                "cron": settings.BACKUP_SCHEDULE,
            },
            "system": {
                "timestamp": _now_iso(),
                "python_version": platform.python_version(),
            },
        }

    def test_configuration(self, method: BackupMethod = BackupMethod.both) -> Dict[str, Any]:
        """Report whether each requested sink has the settings it needs."""
        method = BackupMethod(method)
        tests = {}
        for sink in sinks_for(method, self.object_storage, self.github):
            configured = sink.is_configured
            tests[sink.name] = {
                **sink.describe(),
                "status": "ready" if configured else "missing_configuration",
                "message": (
                    f"{sink.label} backup is properly configured" if configured
                    else sink.missing_config_message
                ),
            }
        all_configured = all(t["configured"] for t in tests.values())
        return {
            "timestamp": _now_iso(),
            "method": method.value,
            "tests": tests,
            "overall": {
                "status": "ready" if all_configured else "configuration_required",
                "message": (
                    "All backup methods are properly configured" if all_configured
                    else "Some backup methods require configuration"
                ),
            },
        }


backup_service = BackupService()
