"""
Bulk Fan-Out Coordinator.

One product photo, one background, one face, many poses. Shared references
are validated and downloaded once; every pose then runs its own generation
concurrently. A failing pose never cancels its siblings, and the user is
charged once, for the poses that actually produced an artifact.

Worker threads only talk to the image generator and the blob store. Every
database write happens on the calling thread after the pool has drained.
"""
from __future__ import annotations

import logging
import time
import uuid
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from datetime import timedelta
from typing import Dict, List, Optional

from django.db import transaction
from django.utils import timezone

from billing.models import CreditTransaction
from billing.observability.metrics import GENERATION_ATTEMPTS, GENERATION_LATENCY
from billing.services.credit_ledger import check_balance, deduct_credits_or_fail

from .cleanup import CleanupScheduler
from .conf import GenerationSettings
from .exceptions import AllGenerationsFailed, GenerationValidationError, as_public_error
from .image_client import GeminiImageClient
from .models import GeneratedImage
from .prompts import ERROR_MESSAGES, build_prompt
from .references import ReferenceResolver
from .schemas import BulkGenerationItem, BulkGenerationRequest
from .services import (
    discard_artifact,
    elapsed_ms,
    insufficient_credits,
    log_generation,
    reference_images,
)
from .storage import BlobStore, StoredArtifact, store_artifact

logger = logging.getLogger(__name__)


@dataclass
class PoseOutcome:
    pose_id: str
    duration_ms: int
    artifact: Optional[StoredArtifact] = None
    error: Optional[Exception] = None


def canonical_pose_ids(pose_ids) -> List[str]:
    """Rewrite pose IDs in the lowercase hyphenated form the database returns."""
    canonical = []
    for pose_id in pose_ids:
        try:
            canonical.append(str(uuid.UUID(str(pose_id))))
        except ValueError as exc:
            raise GenerationValidationError(f"Invalid product pose ID: {pose_id}") from exc
    return canonical


class BulkGenerationCoordinator:
    def __init__(self, config: Optional[GenerationSettings] = None, resolver: Optional[ReferenceResolver] = None,
                 generator=None, blob_store: Optional[BlobStore] = None, cleanup: Optional[CleanupScheduler] = None):
        self.config = config or GenerationSettings.from_settings()
        self.blob_store = blob_store or BlobStore()
        self.resolver = resolver or ReferenceResolver(blob_store=self.blob_store)
        self.generator = generator or GeminiImageClient()
        self.cleanup = cleanup or CleanupScheduler(self.config.retention_hours)

    def generate_bulk(self, request: BulkGenerationRequest, user_id) -> List[BulkGenerationItem]:
        """
        Generate one image per requested pose.

        :return: successful results in request order; failed poses are only
                 visible through their failed ``GeneratedImage`` rows
        :raises GenerationValidationError: empty pose list, or a malformed or repeated pose ID
        :raises InsufficientCredits: balance below ``N * cost`` before starting,
                 or below ``successes * cost`` when charging
        :raises AllGenerationsFailed: no pose produced an image
        """
        started = time.monotonic()
        pose_ids = canonical_pose_ids(request.product_pose_ids)

        if not pose_ids:
            raise GenerationValidationError("At least one product pose is required")
        if len(set(pose_ids)) != len(pose_ids):
            raise GenerationValidationError(ERROR_MESSAGES["DUPLICATE_POSES"])

        cost_per_image = self.config.bulk_cost_per_image
        operation = CreditTransaction.OperationType.BULK_GENERATION
        required = len(pose_ids) * cost_per_image

        balance = check_balance(user_id)
        if balance < required:
            raise insufficient_credits(
                required,
                balance,
                operation,
                detail=f" ({len(pose_ids)} images x {cost_per_image} credits each)",
            )

        product_type = self.resolver.validate_shared(request)
        self.resolver.validate_poses(pose_ids)
        shared = self.resolver.fetch_shared_assets(request)
        descriptions = self.resolver.fetch_pose_descriptions(pose_ids)
        images = reference_images(shared.face, shared.background, request)

        outcomes: Dict[str, PoseOutcome] = {}
        workers = min(self.config.bulk_max_workers, len(pose_ids))
        with ThreadPoolExecutor(max_workers=workers) as pool:
            futures = {
                pool.submit(self._render, pose_id, images, descriptions.get(pose_id, ""), product_type): pose_id
                for pose_id in pose_ids
            }
            for future in as_completed(futures):
                outcome = future.result()
                outcomes[outcome.pose_id] = outcome

        failed = [outcomes[pose_id] for pose_id in pose_ids if outcomes[pose_id].error is not None]
        succeeded = [outcomes[pose_id] for pose_id in pose_ids if outcomes[pose_id].error is None]

        for outcome in failed:
            self._record_failure(request, user_id, outcome, str(outcome.error))
            logger.error(
                f"Bulk generation failed for pose {outcome.pose_id} after {outcome.duration_ms}ms: {outcome.error}"
            )

        if not succeeded:
            logger.error(f"Bulk image generation failed for all {len(pose_ids)} pose(s) in {elapsed_ms(started)}ms")
            raise AllGenerationsFailed(ERROR_MESSAGES["ALL_GENERATIONS_FAILED"])

        expires_at = timezone.now() + timedelta(hours=self.config.retention_hours)
        try:
            with transaction.atomic():
                records = {
                    outcome.pose_id: log_generation(
                        request,
                        pose_id=outcome.pose_id,
                        user_id=user_id,
                        status=GeneratedImage.Status.SUCCESS,
                        generation_type=GeneratedImage.GenerationType.BULK,
                        generation_time_ms=outcome.duration_ms,
                        artifact=outcome.artifact,
                        expires_at=expires_at,
                    )
                    for outcome in succeeded
                }
                deduct_credits_or_fail(
                    user_id,
                    len(succeeded) * cost_per_image,
                    operation,
                    f"Bulk image generation: {len(succeeded)} image(s) generated successfully",
                )
        except Exception as exc:
            for outcome in succeeded:
                discard_artifact(self.blob_store, outcome.artifact)
                self._record_failure(request, user_id, outcome, str(exc))
            logger.error(f"Bulk image generation could not be charged: {exc}")

            public = as_public_error(exc, ERROR_MESSAGES["GENERATION_FAILED"])
            if public is exc:
                raise
            raise public from exc

        for outcome in succeeded:
            self.cleanup.schedule_deletion(outcome.artifact.path, records[outcome.pose_id].id)
            self._observe(GeneratedImage.Status.SUCCESS, outcome.duration_ms)

        logger.info(
            f"Bulk image generation completed: {len(succeeded)}/{len(pose_ids)} successful "
            f"in {elapsed_ms(started)}ms"
        )

        return [
            BulkGenerationItem(artifact_url=outcome.artifact.url, pose_id=outcome.pose_id, expires_at=expires_at)
            for outcome in succeeded
        ]

    def _render(self, pose_id: str, images, pose_description: str, product_type) -> PoseOutcome:
        """Generate and store one pose. Runs on a worker thread; no ORM access."""
        started = time.monotonic()
        try:
            prompt = build_prompt(pose_description, product_type)
            image = self.generator.generate(images, prompt)
            artifact = store_artifact(self.blob_store, image)
        except Exception as exc:
            return PoseOutcome(pose_id=pose_id, duration_ms=elapsed_ms(started), error=exc)
        return PoseOutcome(pose_id=pose_id, duration_ms=elapsed_ms(started), artifact=artifact)

    def _record_failure(self, request, user_id, outcome: PoseOutcome, error_message: str) -> None:
        log_generation(
            request,
            pose_id=outcome.pose_id,
            user_id=user_id,
            status=GeneratedImage.Status.FAILED,
            generation_type=GeneratedImage.GenerationType.BULK,
            generation_time_ms=outcome.duration_ms,
            error_message=error_message,
        )
        self._observe(GeneratedImage.Status.FAILED, outcome.duration_ms)

    @staticmethod
    def _observe(status: str, duration_ms: int) -> None:
        generation_type = GeneratedImage.GenerationType.BULK
        GENERATION_ATTEMPTS.labels(generation_type=generation_type, status=status).inc()
        GENERATION_LATENCY.labels(generation_type=generation_type).observe(duration_ms / 1000)


def generate_bulk(request: BulkGenerationRequest, user_id) -> List[BulkGenerationItem]:
    return BulkGenerationCoordinator().generate_bulk(request, user_id)
