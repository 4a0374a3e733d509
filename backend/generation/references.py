"""
Reference Resolver: catalog validation and reference asset retrieval.

Validation reads every referenced catalog row and reports the first missing
one in a fixed order (industry, category, product type, pose, theme,
background, face) so the error a caller sees never depends on timing.
Soft-deleted rows are invisible through the default managers.
"""
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Dict, Iterable, List

from django.core.exceptions import ValidationError

from catalog.models import (
    AiFace,
    Category,
    Industry,
    ProductBackground,
    ProductPose,
    ProductTheme,
    ProductType,
)

from .exceptions import CatalogReferenceNotFound, ReferenceAssetMissing
from .prompts import ERROR_MESSAGES
from .storage import BlobStore

logger = logging.getLogger(__name__)

SHARED_CHECKS = (
    ("industry_id", Industry, "MISSING_INDUSTRY"),
    ("category_id", Category, "MISSING_CATEGORY"),
    ("product_type_id", ProductType, "MISSING_PRODUCT_TYPE"),
    ("product_theme_id", ProductTheme, "MISSING_PRODUCT_THEME"),
    ("product_background_id", ProductBackground, "MISSING_PRODUCT_BACKGROUND"),
    ("ai_face_id", AiFace, "MISSING_AI_FACE"),
)

# Position of the pose check inside SHARED_CHECKS for single requests.
POSE_CHECK_POSITION = 3


@dataclass(frozen=True)
class ReferenceAssets:
    face: bytes
    background: bytes
    pose_image: bytes
    pose_description: str


@dataclass(frozen=True)
class SharedAssets:
    face: bytes
    background: bytes


def _find(model, pk):
    if not pk:
        return None
    try:
        return model.objects.filter(pk=pk).first()
    except (ValueError, ValidationError):
        # Malformed UUIDs are reported as absent rows.
        return None


def _require_image(entity, label: str) -> str:
    reference = entity.image_reference if entity is not None else None
    if not reference:
        raise ReferenceAssetMissing(
            f"{ERROR_MESSAGES['MISSING_REFERENCE_IMAGE']}: {label} image not available"
        )
    return reference


class ReferenceResolver:
    def __init__(self, blob_store: BlobStore = None, max_workers: int = 3):
        self.blob_store = blob_store or BlobStore()
        self.max_workers = max_workers

    def validate(self, request) -> ProductType:
        """Validate every catalog reference of a single request; return its product type."""
        checks = list(SHARED_CHECKS)
        checks.insert(POSE_CHECK_POSITION, ("product_pose_id", ProductPose, "MISSING_PRODUCT_POSE"))
        return self._run_checks(request, checks)

    def validate_shared(self, request) -> ProductType:
        """Validate the references shared by every pose of a bulk request."""
        return self._run_checks(request, SHARED_CHECKS)

    def validate_poses(self, pose_ids: Iterable[str]) -> None:
        pose_ids = [str(pose_id) for pose_id in pose_ids]
        try:
            found = {str(pk) for pk in ProductPose.objects.filter(id__in=pose_ids).values_list("id", flat=True)}
        except (ValueError, ValidationError):
            # One malformed id poisons the IN query; fall back to row-by-row lookups.
            found = {pose_id for pose_id in pose_ids if _find(ProductPose, pose_id) is not None}

        missing = [pose_id for pose_id in pose_ids if pose_id not in found]
        if missing:
            raise CatalogReferenceNotFound(f"Product poses not found: {', '.join(missing)}")

    def fetch_reference_assets(self, request) -> ReferenceAssets:
        """Download pose, background and face images concurrently."""
        pose = _find(ProductPose, request.product_pose_id)
        background = _find(ProductBackground, request.product_background_id)
        face = _find(AiFace, request.ai_face_id)

        pose_ref = _require_image(pose, "Product pose")
        background_ref = _require_image(background, "Product background")
        face_ref = _require_image(face, "AI face")

        pose_image, background_image, face_image = self._download_all([pose_ref, background_ref, face_ref])

        return ReferenceAssets(
            face=face_image,
            background=background_image,
            pose_image=pose_image,
            pose_description=pose.prompt_description,
        )

    def fetch_shared_assets(self, request) -> SharedAssets:
        background = _find(ProductBackground, request.product_background_id)
        face = _find(AiFace, request.ai_face_id)

        background_ref = _require_image(background, "Product background")
        face_ref = _require_image(face, "AI face")

        background_image, face_image = self._download_all([background_ref, face_ref])
        return SharedAssets(face=face_image, background=background_image)

    def fetch_pose_descriptions(self, pose_ids: Iterable[str]) -> Dict[str, str]:
        pose_ids = [str(pose_id) for pose_id in pose_ids]
        poses = ProductPose.objects.filter(id__in=pose_ids)
        return {str(pose.id): pose.prompt_description for pose in poses}

    def _run_checks(self, request, checks) -> ProductType:
        resolved = {}
        for attr, model, message_key in checks:
            entity = _find(model, getattr(request, attr))
            if entity is None:
                logger.info(f"Catalog reference {attr}={getattr(request, attr)} not found")
                raise CatalogReferenceNotFound(ERROR_MESSAGES[message_key])
            resolved[attr] = entity
        return resolved["product_type_id"]

    def _download_all(self, references: List[str]) -> List[bytes]:
        # Worker threads only touch the blob store, never the ORM.
        with ThreadPoolExecutor(max_workers=min(self.max_workers, len(references))) as pool:
            futures = [pool.submit(self.blob_store.download, reference) for reference in references]
            return [future.result() for future in futures]
