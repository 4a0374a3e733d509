"""Cleanup Scheduler: deferred removal of generated artifacts from blob storage.

Only the binary artifact is ever removed. ``GeneratedImage`` rows stay
forever; they are the audit trail for analytics.
"""
from __future__ import annotations

import logging
from datetime import timedelta
from typing import Dict, Optional

from django.utils import timezone

from .models import GeneratedImage
from .storage import BlobStore

logger = logging.getLogger(__name__)


class CleanupScheduler:
    def __init__(self, retention_hours: int, task=None):
        self.retention_hours = retention_hours
        self._task = task

    @property
    def task(self):
        if self._task is None:
            from generation.tasks import delete_generated_artifact

            self._task = delete_generated_artifact
        return self._task

    def schedule_deletion(self, artifact_path: str, generation_record_id) -> bool:
        """
        Enqueue deletion of ``artifact_path`` once the retention window elapses.

        Returns False when the broker refused the task; the hourly sweep picks
        those artifacts up instead.
        """
        countdown = int(self.retention_hours * 3600)
        try:
            self.task.apply_async(
                args=[artifact_path, str(generation_record_id)],
                countdown=countdown,
            )
        except Exception as exc:
            logger.error(
                f"Failed to schedule deletion of {artifact_path} (record {generation_record_id}): {exc}"
            )
            return False

        logger.info(
            f"Scheduled deletion of {artifact_path} in {self.retention_hours} hours "
            f"(record {generation_record_id})"
        )
        return True


def delete_artifact(artifact_path: str, generation_record_id=None, blob_store: Optional[BlobStore] = None) -> bool:
    """Delete one artifact; failures are logged and reported as False."""
    blob_store = blob_store or BlobStore()
    try:
        blob_store.delete(artifact_path)
    except Exception as exc:
        logger.error(
            f"Failed to delete generated artifact {artifact_path} (record {generation_record_id}): {exc}"
        )
        return False

    logger.info(f"Deleted generated artifact {artifact_path} (record {generation_record_id})")
    return True


def purge_expired_artifacts(lookback_hours: int = 24, blob_store: Optional[BlobStore] = None) -> Dict[str, int]:
    """Delete blobs of success records whose retention ended within the lookback window."""

    now = timezone.now()
    window_start = now - timedelta(hours=lookback_hours)
    blob_store = blob_store or BlobStore()

    expired = (
        GeneratedImage.objects.filter(
            generation_status=GeneratedImage.Status.SUCCESS,
            expires_at__gt=window_start,
            expires_at__lte=now,
            image_path__isnull=False,
        )
        .exclude(image_path="")
        .values_list("id", "image_path")
    )

    stats = {"deleted": 0, "failed": 0, "total": 0}
    for record_id, path in expired.iterator():
        stats["total"] += 1
        if delete_artifact(path, record_id, blob_store=blob_store):
            stats["deleted"] += 1
        else:
            stats["failed"] += 1

    logger.info(
        f"Expired artifact sweep finished: {stats['deleted']} deleted, "
        f"{stats['failed']} failed, {stats['total']} candidates"
    )
    return stats
