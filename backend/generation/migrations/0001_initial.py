import uuid

from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("catalog", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="GeneratedImage",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("image_url", models.CharField(blank=True, max_length=500, null=True)),
                ("image_path", models.CharField(blank=True, max_length=500, null=True)),
                ("generation_status", models.CharField(choices=[("success", "Success"), ("failed", "Failed")], default="success", max_length=10)),
                ("error_message", models.CharField(blank=True, max_length=1000, null=True)),
                ("generation_time_ms", models.PositiveIntegerField(blank=True, null=True)),
                ("expires_at", models.DateTimeField(blank=True, db_index=True, null=True)),
                ("generation_type", models.CharField(choices=[("single", "Single"), ("bulk", "Bulk")], default="single", max_length=10)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("ai_face", models.ForeignKey(on_delete=models.deletion.PROTECT, related_name="+", to="catalog.aiface")),
                ("category", models.ForeignKey(on_delete=models.deletion.PROTECT, related_name="+", to="catalog.category")),
                ("industry", models.ForeignKey(on_delete=models.deletion.PROTECT, related_name="+", to="catalog.industry")),
                ("product_background", models.ForeignKey(on_delete=models.deletion.PROTECT, related_name="+", to="catalog.productbackground")),
                ("product_pose", models.ForeignKey(on_delete=models.deletion.PROTECT, related_name="+", to="catalog.productpose")),
                ("product_theme", models.ForeignKey(on_delete=models.deletion.PROTECT, related_name="+", to="catalog.producttheme")),
                ("product_type", models.ForeignKey(on_delete=models.deletion.PROTECT, related_name="+", to="catalog.producttype")),
                ("user", models.ForeignKey(blank=True, null=True, on_delete=models.deletion.SET_NULL, related_name="generated_images", to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "db_table": "generated_images",
                "ordering": ["-created_at"],
                "constraints": [
                    models.CheckConstraint(condition=models.Q(expires_at__isnull=True) | models.Q(generation_status="success"), name="generated_image_expiry_only_on_success"),
                    models.CheckConstraint(condition=models.Q(expires_at__isnull=True) | models.Q(expires_at__gt=models.F("created_at")), name="generated_image_expiry_after_creation"),
                ],
                "indexes": [
                    models.Index(fields=["user", "generation_status"], name="generated_user_status_idx"),
                    models.Index(fields=["user", "created_at"], name="generated_user_created_idx"),
                    models.Index(fields=["generation_type", "generation_status", "created_at"], name="generated_type_status_idx"),
                ],
            },
        ),
    ]
