import threading
from types import SimpleNamespace
from unittest import mock

import pytest
from django.contrib.auth import get_user_model
from django.core.files.base import ContentFile
from django.core.files.storage import default_storage

from billing.models import CreditTransaction
from billing.services.credit_ledger import add_credits
from catalog.models import (
    AiFace,
    Category,
    Industry,
    ProductBackground,
    ProductPose,
    ProductTheme,
    ProductType,
)


@pytest.fixture(autouse=True)
def isolated_settings(settings, tmp_path):
    settings.MEDIA_ROOT = str(tmp_path / "media")
    settings.SIGNUP_BONUS_CREDITS = 0
    return settings


@pytest.fixture(autouse=True)
def cleanup_enqueue():
    """Celery never reaches a broker from the test suite."""
    with mock.patch("generation.tasks.delete_generated_artifact.apply_async") as apply_async:
        yield apply_async


@pytest.fixture
def make_user(db):
    counter = {"value": 0}

    def _make_user(balance=0, username=None):
        counter["value"] += 1
        name = username or f"user{counter['value']}"
        user = get_user_model().objects.create_user(
            username=name,
            email=f"{name}@example.com",
            password="pass1234",
        )
        if balance:
            add_credits(user.pk, balance, CreditTransaction.OperationType.ADMIN_ADJUSTMENT, "Test top-up")
        return user

    return _make_user


@pytest.fixture
def user(make_user):
    return make_user(username="alice")


def _stored_image(path, payload):
    return default_storage.save(path, ContentFile(payload))


@pytest.fixture
def catalog(db):
    """A complete, live set of catalog references with images in storage."""
    industry = Industry.objects.create(name="Fashion")
    category = Category.objects.create(
        name="Ethnic Wear",
        industry=industry,
        image_path=_stored_image("catalog/categories/ethnic.jpg", b"category-bytes"),
    )
    product_type = ProductType.objects.create(name="Saree", category=category)
    poses = [
        ProductPose.objects.create(
            name=f"Pose {index}",
            description=f"  standing pose number {index}  ",
            image_path=_stored_image(f"catalog/poses/pose-{index}.png", f"pose-{index}".encode()),
        )
        for index in range(1, 5)
    ]
    theme = ProductTheme.objects.create(
        name="Festive",
        image_path=_stored_image("catalog/themes/festive.jpg", b"theme-bytes"),
    )
    background = ProductBackground.objects.create(
        name="Studio White",
        image_path=_stored_image("catalog/backgrounds/studio.jpg", b"background-bytes"),
    )
    face = AiFace.objects.create(
        name="Model A",
        image_path=_stored_image("catalog/faces/model-a.png", b"face-bytes"),
    )
    return SimpleNamespace(
        industry=industry,
        category=category,
        product_type=product_type,
        poses=poses,
        pose=poses[0],
        theme=theme,
        background=background,
        face=face,
    )


class FakeGenerator:
    """Image generator double; fails for prompts containing any of ``fail_on``."""

    def __init__(self, fail_on=(), error=None, payload=b"generated-image"):
        self.fail_on = tuple(fail_on)
        self.error = error
        self.payload = payload
        self.calls = []
        self._lock = threading.Lock()

    def generate(self, reference_images, prompt):
        with self._lock:
            self.calls.append((list(reference_images), prompt))
        if any(marker in prompt for marker in self.fail_on):
            raise self.error or RuntimeError("Rate limit exceeded. Please try again in a moment.")
        return self.payload


@pytest.fixture
def fake_generator():
    return FakeGenerator()


@pytest.fixture
def generator_factory():
    return FakeGenerator
