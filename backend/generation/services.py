"""
Generation Orchestrator.

Drives one generation request end to end:

    credit pre-check -> resolve references -> build prompt -> generate
    -> store artifact -> record + charge (one transaction) -> schedule cleanup

The pre-check runs before any external spend. Nothing is charged unless an
artifact exists, and the success record and the ledger debit commit
together: a debit that loses a race against another charge rolls the
success record back, removes the stored artifact and leaves a failed record
instead.
"""
from __future__ import annotations

import logging
import time
from datetime import timedelta
from typing import List, Optional, Tuple

from django.db import transaction
from django.utils import timezone

from billing.models import CreditTransaction
from billing.observability.metrics import (
    GENERATION_ATTEMPTS,
    GENERATION_LATENCY,
    INSUFFICIENT_CREDIT_REJECTIONS,
)
from billing.services.credit_ledger import (
    DEFAULT_PAGE_SIZE,
    MAX_PAGE_SIZE,
    InsufficientCredits,
    check_balance,
    deduct_credits_or_fail,
)

from .cleanup import CleanupScheduler
from .conf import GenerationSettings
from .exceptions import as_public_error
from .image_client import GeminiImageClient, ReferenceImage
from .models import GeneratedImage
from .prompts import ERROR_MESSAGES, build_prompt
from .references import ReferenceResolver
from .schemas import GenerationRequest, GenerationResult
from .storage import BlobStore, StoredArtifact, store_artifact

logger = logging.getLogger(__name__)

ERROR_MESSAGE_LIMIT = 1000


def elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


def reference_images(face: bytes, background: bytes, request) -> List[ReferenceImage]:
    """Reference images in prompt order: [1] face, [2] background, [3] product."""
    return [
        ReferenceImage(data=face, mime_type="image/png"),
        ReferenceImage(data=background, mime_type="image/jpeg"),
        ReferenceImage(data=request.product_image, mime_type=request.product_image_mime_type),
    ]


def log_generation(
    request,
    *,
    pose_id,
    user_id,
    status: str,
    generation_type: str,
    generation_time_ms: int,
    artifact: Optional[StoredArtifact] = None,
    expires_at=None,
    error_message: Optional[str] = None,
) -> GeneratedImage:
    """Insert the permanent audit row for one attempt. Rows are never updated."""
    return GeneratedImage.objects.create(
        user_id=user_id,
        industry_id=request.industry_id,
        category_id=request.category_id,
        product_type_id=request.product_type_id,
        product_pose_id=pose_id,
        product_theme_id=request.product_theme_id,
        product_background_id=request.product_background_id,
        ai_face_id=request.ai_face_id,
        image_url=artifact.url if artifact else None,
        image_path=artifact.path if artifact else None,
        generation_status=status,
        error_message=error_message[:ERROR_MESSAGE_LIMIT] if error_message else None,
        generation_time_ms=generation_time_ms,
        expires_at=expires_at,
        generation_type=generation_type,
    )


def discard_artifact(blob_store: BlobStore, artifact: Optional[StoredArtifact]) -> None:
    """Best-effort removal of an artifact that will never be charged for."""
    if artifact is None:
        return
    try:
        blob_store.delete(artifact.path)
    except Exception as exc:
        logger.error(f"Failed to discard uncharged artifact {artifact.path}: {exc}")


def insufficient_credits(required: int, available: int, operation_type: str, detail: str = "") -> InsufficientCredits:
    INSUFFICIENT_CREDIT_REJECTIONS.labels(operation_type=operation_type).inc()
    return InsufficientCredits(
        required=required,
        available=available,
        message=(
            f"Insufficient credits. Required: {required}{detail}, Available: {available}. "
            f"Please purchase more credits to generate images."
        ),
    )


class GenerationOrchestrator:
    """Single-image generation workflow with injectable collaborators."""

    def __init__(self, config: Optional[GenerationSettings] = None, resolver: Optional[ReferenceResolver] = None,
                 generator=None, blob_store: Optional[BlobStore] = None, cleanup: Optional[CleanupScheduler] = None):
        self.config = config or GenerationSettings.from_settings()
        self.blob_store = blob_store or BlobStore()
        self.resolver = resolver or ReferenceResolver(blob_store=self.blob_store)
        self.generator = generator or GeminiImageClient()
        self.cleanup = cleanup or CleanupScheduler(self.config.retention_hours)

    def generate_single(self, request: GenerationRequest, user_id) -> GenerationResult:
        started = time.monotonic()
        cost = self.config.image_generation_cost
        operation = CreditTransaction.OperationType.IMAGE_GENERATION

        balance = check_balance(user_id)
        if balance < cost:
            raise insufficient_credits(cost, balance, operation)

        product_type = self.resolver.validate(request)
        assets = self.resolver.fetch_reference_assets(request)

        artifact = None
        try:
            prompt = build_prompt(assets.pose_description, product_type)
            image = self.generator.generate(reference_images(assets.face, assets.background, request), prompt)
            artifact = store_artifact(self.blob_store, image)
            expires_at = timezone.now() + timedelta(hours=self.config.retention_hours)

            with transaction.atomic():
                record = log_generation(
                    request,
                    pose_id=request.product_pose_id,
                    user_id=user_id,
                    status=GeneratedImage.Status.SUCCESS,
                    generation_type=GeneratedImage.GenerationType.SINGLE,
                    generation_time_ms=elapsed_ms(started),
                    artifact=artifact,
                    expires_at=expires_at,
                )
                deduct_credits_or_fail(
                    user_id,
                    cost,
                    operation,
                    f"Single image generation: {record.id}",
                    related_entity_id=record.id,
                )
        except Exception as exc:
            duration = elapsed_ms(started)
            discard_artifact(self.blob_store, artifact)
            log_generation(
                request,
                pose_id=request.product_pose_id,
                user_id=user_id,
                status=GeneratedImage.Status.FAILED,
                generation_type=GeneratedImage.GenerationType.SINGLE,
                generation_time_ms=duration,
                error_message=str(exc),
            )
            self._observe(GeneratedImage.Status.FAILED, duration)
            logger.error(f"Image generation failed after {duration}ms: {exc}")

            public = as_public_error(exc, ERROR_MESSAGES["GENERATION_FAILED"])
            if public is exc:
                raise
            raise public from exc

        self.cleanup.schedule_deletion(artifact.path, record.id)

        duration = elapsed_ms(started)
        self._observe(GeneratedImage.Status.SUCCESS, duration)
        logger.info(f"Image generation completed successfully in {duration}ms (record {record.id})")

        return GenerationResult(artifact_url=artifact.url, expires_at=expires_at, record_id=str(record.id))

    @staticmethod
    def _observe(status: str, duration_ms: int) -> None:
        generation_type = GeneratedImage.GenerationType.SINGLE
        GENERATION_ATTEMPTS.labels(generation_type=generation_type, status=status).inc()
        GENERATION_LATENCY.labels(generation_type=generation_type).observe(duration_ms / 1000)


def generate_single(request: GenerationRequest, user_id) -> GenerationResult:
    return GenerationOrchestrator().generate_single(request, user_id)


def list_user_images(
    user_id,
    *,
    page: int = 1,
    limit: int = DEFAULT_PAGE_SIZE,
    generation_type: Optional[str] = None,
) -> Tuple[List[GeneratedImage], int]:
    """Successful generations whose artifacts are still retained, newest first."""

    queryset = GeneratedImage.objects.filter(
        user_id=user_id,
        generation_status=GeneratedImage.Status.SUCCESS,
        expires_at__gt=timezone.now(),
    )
    if generation_type:
        queryset = queryset.filter(generation_type=generation_type)

    page = max(int(page or 1), 1)
    limit = min(max(int(limit or DEFAULT_PAGE_SIZE), 1), MAX_PAGE_SIZE)
    offset = (page - 1) * limit

    ordered = queryset.order_by("-created_at", "-id")
    total = ordered.count()
    return list(ordered[offset:offset + limit]), total
