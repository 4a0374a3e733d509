from datetime import timedelta
from unittest import mock

import pytest
from django.core.files.base import ContentFile
from django.core.files.storage import default_storage
from django.utils import timezone

from backend.celery import app as celery_app
from generation.cleanup import CleanupScheduler, delete_artifact, purge_expired_artifacts
from generation.models import GeneratedImage
from generation.tasks import delete_generated_artifact
from generation.tasks import purge_expired_artifacts as purge_task


def _success_record(catalog, user, path, expires_at):
    record = GeneratedImage.objects.create(
        user=user,
        industry=catalog.industry,
        category=catalog.category,
        product_type=catalog.product_type,
        product_pose=catalog.pose,
        product_theme=catalog.theme,
        product_background=catalog.background,
        ai_face=catalog.face,
        image_path=path,
        image_url=default_storage.url(path),
        generation_status=GeneratedImage.Status.SUCCESS,
        generation_time_ms=1200,
        expires_at=timezone.now() + timedelta(hours=6),
        generation_type=GeneratedImage.GenerationType.SINGLE,
    )
    # created_at is set on insert, so back-date through the queryset to simulate age.
    GeneratedImage.objects.filter(pk=record.pk).update(
        created_at=expires_at - timedelta(hours=6),
        expires_at=expires_at,
    )
    return record


def test_schedule_deletion_uses_retention_countdown():
    task = mock.Mock()

    assert CleanupScheduler(6, task=task).schedule_deletion("generated-images/a/image.jpg", "rec-1") is True

    task.apply_async.assert_called_once_with(args=["generated-images/a/image.jpg", "rec-1"], countdown=21600)


def test_schedule_deletion_swallows_broker_errors():
    task = mock.Mock()
    task.apply_async.side_effect = OSError("connection refused")

    assert CleanupScheduler(6, task=task).schedule_deletion("generated-images/a/image.jpg", "rec-1") is False


def test_default_scheduler_enqueues_celery_task(cleanup_enqueue):
    CleanupScheduler(2).schedule_deletion("generated-images/b/image.jpg", "rec-2")

    cleanup_enqueue.assert_called_once_with(args=["generated-images/b/image.jpg", "rec-2"], countdown=7200)


def test_delete_artifact_removes_blob():
    path = default_storage.save("generated-images/c/image.jpg", ContentFile(b"img"))

    assert delete_artifact(path, "rec-3") is True
    assert not default_storage.exists(path)


def test_delete_artifact_tolerates_missing_blob():
    assert delete_artifact("generated-images/gone/image.jpg", "rec-4") is True


def test_delete_artifact_logs_and_swallows_storage_errors():
    blob_store = mock.Mock()
    blob_store.delete.side_effect = OSError("permission denied")

    assert delete_artifact("generated-images/d/image.jpg", "rec-5", blob_store=blob_store) is False


@pytest.mark.django_db
def test_task_deletes_blob_but_keeps_record(catalog, user):
    path = default_storage.save("generated-images/e/image.jpg", ContentFile(b"img"))
    record = _success_record(catalog, user, path, timezone.now() - timedelta(minutes=1))

    assert delete_generated_artifact(path, str(record.id)) is True

    assert not default_storage.exists(path)
    assert GeneratedImage.objects.filter(pk=record.pk).exists()


@pytest.mark.django_db
def test_sweep_only_touches_recently_expired_artifacts(catalog, user):
    expired_path = default_storage.save("generated-images/f/image.jpg", ContentFile(b"img"))
    live_path = default_storage.save("generated-images/g/image.jpg", ContentFile(b"img"))
    ancient_path = default_storage.save("generated-images/h/image.jpg", ContentFile(b"img"))
    now = timezone.now()
    _success_record(catalog, user, expired_path, now - timedelta(hours=1))
    _success_record(catalog, user, live_path, now + timedelta(hours=1))
    _success_record(catalog, user, ancient_path, now - timedelta(hours=48))

    stats = purge_expired_artifacts(lookback_hours=24)

    assert stats == {"deleted": 1, "failed": 0, "total": 1}
    assert not default_storage.exists(expired_path)
    assert default_storage.exists(live_path)
    assert default_storage.exists(ancient_path)
    assert GeneratedImage.objects.count() == 3


@pytest.mark.django_db
def test_sweep_task_reads_lookback_from_settings(settings):
    settings.ARTIFACT_SWEEP_LOOKBACK_HOURS = 12

    with mock.patch("generation.tasks.purge_expired", return_value={"deleted": 0, "failed": 0, "total": 0}) as purge:
        purge_task()

    purge.assert_called_once_with(lookback_hours=12)


def test_broker_keeps_deletions_unclaimed_until_their_countdown(settings):
    countdown = settings.IMAGE_RETENTION_HOURS * 3600
    visibility_timeout = celery_app.conf.broker_transport_options["visibility_timeout"]

    assert visibility_timeout > countdown
