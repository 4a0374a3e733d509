"""Reference catalog read by the generation pipeline.

Every catalog model shares one soft-delete convention: ``objects`` never
returns a row whose ``deleted_at`` is set, so callers cannot forget the
filter. ``all_objects`` exposes the raw table for maintenance code.
"""
import uuid

from django.db import models
from django.utils import timezone


class SoftDeleteQuerySet(models.QuerySet):
    def alive(self):
        return self.filter(deleted_at__isnull=True)

    def dead(self):
        return self.filter(deleted_at__isnull=False)


class ActiveManager(models.Manager.from_queryset(SoftDeleteQuerySet)):
    """Default manager hiding soft-deleted rows."""

    def get_queryset(self):
        return super().get_queryset().alive()


class SoftDeleteModel(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=255)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    deleted_at = models.DateTimeField(blank=True, null=True, db_index=True)

    objects = ActiveManager()
    all_objects = models.Manager.from_queryset(SoftDeleteQuerySet)()

    class Meta:
        abstract = True
        ordering = ["name"]

    def __str__(self):
        return self.name

    def soft_delete(self):
        self.deleted_at = timezone.now()
        self.save(update_fields=["deleted_at", "updated_at"])


class ImageReferenceModel(SoftDeleteModel):
    """Catalog entry backed by an image in blob storage."""

    image_path = models.CharField(
        max_length=500,
        blank=True,
        null=True,
        help_text="Storage path of the reference image",
    )
    image_url = models.CharField(
        max_length=500,
        blank=True,
        null=True,
        help_text="Public URL of the reference image",
    )

    class Meta(SoftDeleteModel.Meta):
        abstract = True

    @property
    def image_reference(self):
        """Storage path when known, otherwise the public URL, otherwise None."""
        return self.image_path or self.image_url or None


class Industry(SoftDeleteModel):
    class Meta(SoftDeleteModel.Meta):
        db_table = "catalog_industry"
        verbose_name_plural = "Industries"


class Category(ImageReferenceModel):
    industry = models.ForeignKey(
        Industry,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="categories",
    )

    class Meta(ImageReferenceModel.Meta):
        db_table = "catalog_category"
        verbose_name_plural = "Categories"


class ProductType(SoftDeleteModel):
    category = models.ForeignKey(
        Category,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="product_types",
    )

    class Meta(SoftDeleteModel.Meta):
        db_table = "catalog_product_type"


class ProductPose(ImageReferenceModel):
    description = models.CharField(
        max_length=1000,
        blank=True,
        null=True,
        help_text="Pose instructions inserted verbatim into the generation prompt",
    )

    class Meta(ImageReferenceModel.Meta):
        db_table = "catalog_product_pose"

    @property
    def prompt_description(self):
        """Trimmed description, falling back to the pose name."""
        return (self.description or "").strip() or self.name or ""


class ProductTheme(ImageReferenceModel):
    class Meta(ImageReferenceModel.Meta):
        db_table = "catalog_product_theme"


class ProductBackground(ImageReferenceModel):
    class Meta(ImageReferenceModel.Meta):
        db_table = "catalog_product_background"


class AiFace(ImageReferenceModel):
    class Meta(ImageReferenceModel.Meta):
        db_table = "catalog_ai_face"
        verbose_name = "AI face"
