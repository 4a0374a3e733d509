from typing import Dict

from celery import shared_task

from .cleanup import delete_artifact, purge_expired_artifacts as purge_expired
from .conf import GenerationSettings


@shared_task
def delete_generated_artifact(artifact_path: str, generation_record_id: str = None) -> bool:
    """Remove a generated image from blob storage once its retention window is over."""
    return delete_artifact(artifact_path, generation_record_id)


@shared_task
def purge_expired_artifacts() -> Dict[str, int]:
    """Hourly safety net for artifacts whose countdown task never ran."""
    config = GenerationSettings.from_settings()
    return purge_expired(lookback_hours=config.sweep_lookback_hours)
