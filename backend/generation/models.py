import uuid

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models
from django.db.models import F, Q

from catalog.models import (
    AiFace,
    Category,
    Industry,
    ProductBackground,
    ProductPose,
    ProductTheme,
    ProductType,
)


class GeneratedImage(models.Model):
    """
    One row per attempted image generation, successful or not.

    The row is the permanent audit trail: the artifact in blob storage is
    removed after the retention window, the row never is.
    """

    class Status(models.TextChoices):
        SUCCESS = 'success', 'Success'
        FAILED = 'failed', 'Failed'

    class GenerationType(models.TextChoices):
        SINGLE = 'single', 'Single'
        BULK = 'bulk', 'Bulk'

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name='generated_images',
    )
    industry = models.ForeignKey(Industry, on_delete=models.PROTECT, related_name='+')
    category = models.ForeignKey(Category, on_delete=models.PROTECT, related_name='+')
    product_type = models.ForeignKey(ProductType, on_delete=models.PROTECT, related_name='+')
    product_pose = models.ForeignKey(ProductPose, on_delete=models.PROTECT, related_name='+')
    product_theme = models.ForeignKey(ProductTheme, on_delete=models.PROTECT, related_name='+')
    product_background = models.ForeignKey(ProductBackground, on_delete=models.PROTECT, related_name='+')
    ai_face = models.ForeignKey(AiFace, on_delete=models.PROTECT, related_name='+')

    image_url = models.CharField(max_length=500, null=True, blank=True)
    image_path = models.CharField(max_length=500, null=True, blank=True)
    generation_status = models.CharField(max_length=10, choices=Status.choices, default=Status.SUCCESS)
    error_message = models.CharField(max_length=1000, null=True, blank=True)
    generation_time_ms = models.PositiveIntegerField(null=True, blank=True)
    expires_at = models.DateTimeField(null=True, blank=True, db_index=True)
    generation_type = models.CharField(
        max_length=10,
        choices=GenerationType.choices,
        default=GenerationType.SINGLE,
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'generated_images'
        ordering = ['-created_at']
        constraints = [
            models.CheckConstraint(
                condition=Q(expires_at__isnull=True) | Q(generation_status='success'),
                name='generated_image_expiry_only_on_success',
            ),
            models.CheckConstraint(
                condition=Q(expires_at__isnull=True) | Q(expires_at__gt=F('created_at')),
                name='generated_image_expiry_after_creation',
            ),
        ]
        indexes = [
            models.Index(fields=['user', 'generation_status'], name='generated_user_status_idx'),
            models.Index(fields=['user', 'created_at'], name='generated_user_created_idx'),
            models.Index(
                fields=['generation_type', 'generation_status', 'created_at'],
                name='generated_type_status_idx',
            ),
        ]

    def __str__(self):
        return f"GeneratedImage<{self.generation_type}:{self.generation_status} {self.id}>"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValidationError("GeneratedImage records are permanent and cannot be updated.")
        return super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValidationError("GeneratedImage records are permanent and cannot be deleted.")

    @property
    def succeeded(self):
        return self.generation_status == self.Status.SUCCESS
