"""Configuration injected into the generation pipeline."""
from __future__ import annotations

from dataclasses import dataclass

from django.conf import settings


@dataclass(frozen=True)
class GenerationSettings:
    image_generation_cost: int = 5
    bulk_cost_per_image: int = 5
    retention_hours: int = 6
    bulk_max_workers: int = 4
    sweep_lookback_hours: int = 24

    def __post_init__(self):
        for name in ("image_generation_cost", "bulk_cost_per_image", "retention_hours", "bulk_max_workers"):
            if int(getattr(self, name)) < 1:
                raise ValueError(f"{name} must be at least 1")

    @classmethod
    def from_settings(cls) -> "GenerationSettings":
        """Snapshot the Django settings once, at orchestration start."""
        return cls(
            image_generation_cost=int(getattr(settings, "IMAGE_GENERATION_COST", 5)),
            bulk_cost_per_image=int(getattr(settings, "BULK_GENERATION_COST_PER_IMAGE", 5)),
            retention_hours=int(getattr(settings, "IMAGE_RETENTION_HOURS", 6)),
            bulk_max_workers=int(getattr(settings, "BULK_GENERATION_MAX_WORKERS", 4)),
            sweep_lookback_hours=int(getattr(settings, "ARTIFACT_SWEEP_LOOKBACK_HOURS", 24)),
        )
