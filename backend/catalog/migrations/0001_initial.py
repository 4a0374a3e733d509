import uuid

from django.db import migrations, models


def _soft_delete_fields():
    return [
        ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
        ("name", models.CharField(max_length=255)),
        ("created_at", models.DateTimeField(auto_now_add=True)),
        ("updated_at", models.DateTimeField(auto_now=True)),
        ("deleted_at", models.DateTimeField(blank=True, db_index=True, null=True)),
    ]


def _image_fields():
    return _soft_delete_fields() + [
        ("image_path", models.CharField(blank=True, help_text="Storage path of the reference image", max_length=500, null=True)),
        ("image_url", models.CharField(blank=True, help_text="Public URL of the reference image", max_length=500, null=True)),
    ]


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Industry",
            fields=_soft_delete_fields(),
            options={
                "db_table": "catalog_industry",
                "ordering": ["name"],
                "abstract": False,
                "verbose_name_plural": "Industries",
            },
        ),
        migrations.CreateModel(
            name="Category",
            fields=_image_fields() + [
                ("industry", models.ForeignKey(blank=True, null=True, on_delete=models.deletion.PROTECT, related_name="categories", to="catalog.industry")),
            ],
            options={
                "db_table": "catalog_category",
                "ordering": ["name"],
                "abstract": False,
                "verbose_name_plural": "Categories",
            },
        ),
        migrations.CreateModel(
            name="ProductType",
            fields=_soft_delete_fields() + [
                ("category", models.ForeignKey(blank=True, null=True, on_delete=models.deletion.PROTECT, related_name="product_types", to="catalog.category")),
            ],
            options={
                "db_table": "catalog_product_type",
                "ordering": ["name"],
                "abstract": False,
            },
        ),
        migrations.CreateModel(
            name="ProductPose",
            fields=_image_fields() + [
                ("description", models.CharField(blank=True, help_text="Pose instructions inserted verbatim into the generation prompt", max_length=1000, null=True)),
            ],
            options={
                "db_table": "catalog_product_pose",
                "ordering": ["name"],
                "abstract": False,
            },
        ),
        migrations.CreateModel(
            name="ProductTheme",
            fields=_image_fields(),
            options={
                "db_table": "catalog_product_theme",
                "ordering": ["name"],
                "abstract": False,
            },
        ),
        migrations.CreateModel(
            name="ProductBackground",
            fields=_image_fields(),
            options={
                "db_table": "catalog_product_background",
                "ordering": ["name"],
                "abstract": False,
            },
        ),
        migrations.CreateModel(
            name="AiFace",
            fields=_image_fields(),
            options={
                "db_table": "catalog_ai_face",
                "ordering": ["name"],
                "abstract": False,
                "verbose_name": "AI face",
            },
        ),
    ]
