import uuid

import django.core.validators
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="CreditAccount",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("balance", models.IntegerField(default=0, help_text="Current available credit balance", validators=[django.core.validators.MinValueValidator(0)])),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("user", models.OneToOneField(help_text="Owner of the balance", on_delete=models.deletion.PROTECT, related_name="credit_account", to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "db_table": "billing_credit_account",
                "ordering": ["-created_at"],
                "verbose_name": "Credit account",
                "verbose_name_plural": "Credit accounts",
                "constraints": [
                    models.CheckConstraint(condition=models.Q(balance__gte=0), name="credit_account_balance_non_negative"),
                ],
            },
        ),
        migrations.CreateModel(
            name="CreditTransaction",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("amount", models.IntegerField(help_text="Signed credit amount; positive for credits, negative for debits")),
                ("operation_type", models.CharField(choices=[("signup_bonus", "Signup Bonus"), ("image_generation", "Image Generation"), ("bulk_generation", "Bulk Generation"), ("face_swap", "Face Swap"), ("admin_adjustment", "Admin Adjustment"), ("refund", "Refund")], help_text="Categorisation of the credit movement", max_length=32)),
                ("description", models.CharField(blank=True, help_text="Human-readable context for the transaction", max_length=500)),
                ("related_entity_id", models.UUIDField(blank=True, help_text="Entity that caused the movement, e.g. a generated image record", null=True)),
                ("balance_before", models.IntegerField()),
                ("balance_after", models.IntegerField()),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("user", models.ForeignKey(help_text="User whose balance moved", on_delete=models.deletion.PROTECT, related_name="credit_transactions", to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "db_table": "billing_credit_transaction",
                "ordering": ["-created_at"],
                "verbose_name": "Credit transaction",
                "verbose_name_plural": "Credit transactions",
                "constraints": [
                    models.CheckConstraint(condition=~models.Q(amount=0), name="credit_transaction_non_zero"),
                    models.CheckConstraint(condition=models.Q(balance_after=models.F("balance_before") + models.F("amount")), name="credit_transaction_balance_arithmetic"),
                    models.CheckConstraint(condition=models.Q(balance_after__gte=0), name="credit_transaction_balance_after_non_negative"),
                ],
                "indexes": [
                    models.Index(fields=["user", "created_at"], name="credit_tx_user_created_idx"),
                    models.Index(fields=["operation_type"], name="credit_tx_operation_idx"),
                ],
            },
        ),
    ]
