"""Billing models for the per-user credit balance and its append-only ledger."""
import uuid

from django.conf import settings
from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator
from django.db import models
from django.db.models import F, Q


class CreditAccount(models.Model):
    """Stores the credit balance of a single user.

    The row doubles as the lock target for every ledger mutation: writers take
    ``SELECT ... FOR UPDATE`` on it before reading the balance.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="credit_account",
        help_text="Owner of the balance",
    )
    balance = models.IntegerField(
        default=0,
        validators=[MinValueValidator(0)],
        help_text="Current available credit balance",
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "billing_credit_account"
        verbose_name = "Credit account"
        verbose_name_plural = "Credit accounts"
        ordering = ["-created_at"]
        constraints = [
            models.CheckConstraint(
                condition=Q(balance__gte=0),
                name="credit_account_balance_non_negative",
            ),
        ]

    def clean(self):
        super().clean()
        if self.balance is not None and self.balance < 0:
            raise ValidationError("CreditAccount balance cannot be negative.")

    def save(self, *args, **kwargs):
        self.full_clean()
        return super().save(*args, **kwargs)

    def __str__(self):
        return f"CreditAccount<{self.user_id}:{self.balance}>"


class CreditTransaction(models.Model):
    """Immutable audit trail for all credit balance changes."""

    class OperationType(models.TextChoices):
        SIGNUP_BONUS = "signup_bonus", "Signup Bonus"
        IMAGE_GENERATION = "image_generation", "Image Generation"
        BULK_GENERATION = "bulk_generation", "Bulk Generation"
        FACE_SWAP = "face_swap", "Face Swap"
        ADMIN_ADJUSTMENT = "admin_adjustment", "Admin Adjustment"
        REFUND = "refund", "Refund"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="credit_transactions",
        help_text="User whose balance moved",
    )
    amount = models.IntegerField(
        help_text="Signed credit amount; positive for credits, negative for debits",
    )
    operation_type = models.CharField(
        max_length=32,
        choices=OperationType.choices,
        help_text="Categorisation of the credit movement",
    )
    description = models.CharField(
        max_length=500,
        blank=True,
        help_text="Human-readable context for the transaction",
    )
    related_entity_id = models.UUIDField(
        blank=True,
        null=True,
        help_text="Entity that caused the movement, e.g. a generated image record",
    )
    balance_before = models.IntegerField()
    balance_after = models.IntegerField()
    sequence = models.PositiveBigIntegerField(
        editable=False,
        help_text="Position of the row in the user's ledger, assigned under the account lock",
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "billing_credit_transaction"
        verbose_name = "Credit transaction"
        verbose_name_plural = "Credit transactions"
        ordering = ["-created_at"]
        constraints = [
            models.CheckConstraint(condition=~Q(amount=0), name="credit_transaction_non_zero"),
            models.CheckConstraint(
                condition=Q(balance_after=F("balance_before") + F("amount")),
                name="credit_transaction_balance_arithmetic",
            ),
            models.CheckConstraint(
                condition=Q(balance_after__gte=0),
                name="credit_transaction_balance_after_non_negative",
            ),
            models.UniqueConstraint(fields=["user", "sequence"], name="credit_tx_user_sequence_unique"),
        ]
        indexes = [
            models.Index(fields=["user", "created_at"], name="credit_tx_user_created_idx"),
            models.Index(fields=["operation_type"], name="credit_tx_operation_idx"),
        ]

    def clean(self):
        super().clean()
        if self.amount == 0:
            raise ValidationError("Amount must be non-zero.")
        if self.balance_after != self.balance_before + self.amount:
            raise ValidationError("balance_after must equal balance_before + amount.")

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValidationError("CreditTransaction records are immutable and cannot be updated.")
        self.full_clean()
        return super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValidationError("CreditTransaction records are immutable and cannot be deleted.")

    def __str__(self):
        return f"CreditTransaction<{self.operation_type}:{self.amount} for {self.user_id}>"
