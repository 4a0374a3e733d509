import uuid
from datetime import timedelta
from unittest import mock

import pytest
from django.core.exceptions import ValidationError
from django.core.files.storage import default_storage
from django.utils import timezone

from billing.models import CreditTransaction
from billing.services.credit_ledger import InsufficientCredits, check_balance
from generation.cleanup import CleanupScheduler
from generation.conf import GenerationSettings
from generation.exceptions import ArtifactStorageError, CatalogReferenceNotFound, ExternalServiceFailure
from generation.models import GeneratedImage
from generation.schemas import GenerationRequest
from generation.services import GenerationOrchestrator, list_user_images
from generation.storage import BlobStore


def _request(catalog, **overrides):
    fields = dict(
        industry_id=str(catalog.industry.id),
        category_id=str(catalog.category.id),
        product_type_id=str(catalog.product_type.id),
        product_pose_id=str(catalog.pose.id),
        product_theme_id=str(catalog.theme.id),
        product_background_id=str(catalog.background.id),
        ai_face_id=str(catalog.face.id),
        product_image=b"product-bytes",
        product_image_mime_type="image/webp",
    )
    fields.update(overrides)
    return GenerationRequest(**fields)


def _orchestrator(generator, **kwargs):
    return GenerationOrchestrator(
        config=GenerationSettings(image_generation_cost=5, retention_hours=6),
        generator=generator,
        **kwargs,
    )


def _artifacts():
    if not default_storage.exists("generated-images"):
        return []
    directories, _ = default_storage.listdir("generated-images")
    files = []
    for directory in directories:
        _, names = default_storage.listdir(f"generated-images/{directory}")
        files.extend(f"generated-images/{directory}/{name}" for name in names)
    return files


@pytest.mark.django_db
def test_successful_generation_charges_once_and_schedules_cleanup(make_user, catalog, fake_generator, cleanup_enqueue):
    user = make_user(balance=10)

    result = _orchestrator(fake_generator).generate_single(_request(catalog), user.pk)

    assert check_balance(user.pk) == 5
    record = GeneratedImage.objects.get()
    assert str(record.id) == result.record_id
    assert record.generation_status == GeneratedImage.Status.SUCCESS
    assert record.generation_type == GeneratedImage.GenerationType.SINGLE
    assert record.image_url == result.artifact_url
    assert record.expires_at == result.expires_at
    assert timedelta(hours=5, minutes=59) < result.expires_at - timezone.now() <= timedelta(hours=6)
    assert default_storage.open(record.image_path).read() == b"generated-image"

    debit = CreditTransaction.objects.get(user=user, amount__lt=0)
    assert debit.amount == -5
    assert debit.operation_type == CreditTransaction.OperationType.IMAGE_GENERATION
    assert debit.related_entity_id == record.id
    assert debit.description == f"Single image generation: {record.id}"

    cleanup_enqueue.assert_called_once_with(args=[record.image_path, str(record.id)], countdown=6 * 3600)


@pytest.mark.django_db
def test_generator_receives_face_background_product_in_order(make_user, catalog, fake_generator):
    user = make_user(balance=5)

    _orchestrator(fake_generator).generate_single(_request(catalog), user.pk)

    images, prompt = fake_generator.calls[0]
    assert [(image.data, image.mime_type) for image in images] == [
        (b"face-bytes", "image/png"),
        (b"background-bytes", "image/jpeg"),
        (b"product-bytes", "image/webp"),
    ]
    assert "standing pose number 1" in prompt


@pytest.mark.django_db
def test_insufficient_balance_fails_before_any_work(make_user, catalog, fake_generator):
    user = make_user(balance=3)

    with pytest.raises(InsufficientCredits) as exc:
        _orchestrator(fake_generator).generate_single(_request(catalog), user.pk)

    assert str(exc.value) == (
        "Insufficient credits. Required: 5, Available: 3. Please purchase more credits to generate images."
    )
    assert exc.value.status_code == 402
    assert fake_generator.calls == []
    assert not GeneratedImage.objects.exists()
    assert check_balance(user.pk) == 3


@pytest.mark.django_db
def test_missing_reference_aborts_without_record(make_user, catalog, fake_generator):
    user = make_user(balance=10)

    with pytest.raises(CatalogReferenceNotFound):
        _orchestrator(fake_generator).generate_single(_request(catalog, industry_id=str(uuid.uuid4())), user.pk)

    assert fake_generator.calls == []
    assert not GeneratedImage.objects.exists()


@pytest.mark.django_db
def test_generator_failure_writes_failed_record_and_charges_nothing(make_user, catalog, generator_factory, cleanup_enqueue):
    user = make_user(balance=10)
    generator = generator_factory(fail_on=["standing pose"])

    with pytest.raises(ExternalServiceFailure) as exc:
        _orchestrator(generator).generate_single(_request(catalog), user.pk)

    assert str(exc.value).startswith("Failed to generate image. Please try again.: Rate limit exceeded")
    record = GeneratedImage.objects.get()
    assert record.generation_status == GeneratedImage.Status.FAILED
    assert record.error_message == "Rate limit exceeded. Please try again in a moment."
    assert record.expires_at is None
    assert record.image_path is None
    assert record.generation_time_ms is not None
    assert check_balance(user.pk) == 10
    cleanup_enqueue.assert_not_called()


@pytest.mark.django_db
def test_storage_failure_surfaces_storage_error(make_user, catalog, fake_generator):
    user = make_user(balance=10)
    blob_store = BlobStore()

    with mock.patch.object(blob_store, "upload", side_effect=OSError("disk full")):
        with pytest.raises(ArtifactStorageError) as exc:
            _orchestrator(fake_generator, blob_store=blob_store).generate_single(_request(catalog), user.pk)

    assert str(exc.value) == "Failed to store generated image"
    assert GeneratedImage.objects.get().error_message == "Failed to store generated image"
    assert check_balance(user.pk) == 10


@pytest.mark.django_db
def test_lost_deduction_race_rolls_back_success_and_removes_artifact(make_user, catalog, fake_generator, cleanup_enqueue):
    user = make_user(balance=10)
    race = InsufficientCredits(required=5, available=0)

    with mock.patch("generation.services.deduct_credits_or_fail", side_effect=race):
        with pytest.raises(InsufficientCredits):
            _orchestrator(fake_generator).generate_single(_request(catalog), user.pk)

    record = GeneratedImage.objects.get()
    assert record.generation_status == GeneratedImage.Status.FAILED
    assert record.error_message == str(race)
    assert _artifacts() == []
    assert check_balance(user.pk) == 10
    cleanup_enqueue.assert_not_called()


@pytest.mark.django_db
def test_broker_outage_does_not_fail_a_charged_generation(make_user, catalog, fake_generator):
    user = make_user(balance=5)
    task = mock.Mock()
    task.apply_async.side_effect = ConnectionError("broker unavailable")

    result = _orchestrator(fake_generator, cleanup=CleanupScheduler(6, task=task)).generate_single(
        _request(catalog), user.pk
    )

    assert result.artifact_url
    assert check_balance(user.pk) == 0


@pytest.mark.django_db
def test_generation_records_are_permanent(make_user, catalog, fake_generator):
    user = make_user(balance=5)
    _orchestrator(fake_generator).generate_single(_request(catalog), user.pk)
    record = GeneratedImage.objects.get()

    with pytest.raises(ValidationError):
        record.delete()
    with pytest.raises(ValidationError):
        record.save()

    assert GeneratedImage.objects.filter(pk=record.pk).exists()


@pytest.mark.django_db
def test_list_user_images_returns_retained_successes_newest_first(make_user, catalog, fake_generator, generator_factory):
    user = make_user(balance=15)
    other = make_user(balance=5)
    orchestrator = _orchestrator(fake_generator)

    first = orchestrator.generate_single(_request(catalog), user.pk)
    second = orchestrator.generate_single(_request(catalog), user.pk)
    orchestrator.generate_single(_request(catalog), other.pk)

    with pytest.raises(ExternalServiceFailure):
        _orchestrator(generator_factory(fail_on=["standing pose"])).generate_single(_request(catalog), user.pk)

    records, total = list_user_images(user.pk)
    assert total == 2
    assert [str(record.id) for record in records] == [second.record_id, first.record_id]

    _, bulk_total = list_user_images(user.pk, generation_type=GeneratedImage.GenerationType.BULK)
    assert bulk_total == 0
