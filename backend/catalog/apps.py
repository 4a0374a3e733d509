"""Configuration for the reference catalog used by image generation."""

from django.apps import AppConfig


class CatalogConfig(AppConfig):
    """Industries, categories, product types, poses, themes, backgrounds and faces."""

    # Rows are maintained by the admin tooling; the generation pipeline only reads them.
    default_auto_field = "django.db.models.BigAutoField"
    name = "catalog"
    verbose_name = "Reference Catalog"
