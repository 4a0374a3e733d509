"""Plain request and result types exchanged with the generation services."""
from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from .exceptions import GenerationValidationError


def decode_product_image(value) -> bytes:
    """
    Accept raw bytes, a base64 string or a ``data:<mime>;base64,<payload>`` URL.
    """
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    if not isinstance(value, str) or not value.strip():
        raise GenerationValidationError("Product image is required")

    payload = value.split(",", 1)[1] if value.startswith("data:") and "," in value else value
    try:
        return base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise GenerationValidationError("Product image is not valid base64") from exc


@dataclass(frozen=True)
class SharedReferences:
    industry_id: str
    category_id: str
    product_type_id: str
    product_theme_id: str
    product_background_id: str
    ai_face_id: str
    product_image: bytes
    product_image_mime_type: str = "image/jpeg"

    def __post_init__(self):
        # Frozen dataclass, so the normalised bytes are set through object.__setattr__.
        object.__setattr__(self, "product_image", decode_product_image(self.product_image))
        if not self.product_image:
            raise GenerationValidationError("Product image is required")


@dataclass(frozen=True)
class GenerationRequest(SharedReferences):
    product_pose_id: Optional[str] = None

    def __post_init__(self):
        super().__post_init__()
        if not self.product_pose_id:
            raise GenerationValidationError("Product pose is required")


@dataclass(frozen=True)
class BulkGenerationRequest(SharedReferences):
    product_pose_ids: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class GenerationResult:
    artifact_url: str
    expires_at: datetime
    record_id: str


@dataclass(frozen=True)
class BulkGenerationItem:
    artifact_url: str
    pose_id: str
    expires_at: datetime
