"""Per-user credit ledger with row-locked, append-only balance mutations.

Every mutation runs inside ``transaction.atomic()`` and locks the user's
``CreditAccount`` row with ``select_for_update`` before reading the balance,
so two concurrent writers for the same user are serialised and the second one
always sees the first one's committed balance.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from django.contrib.auth import get_user_model
from django.db import transaction
from django.db.models import Max

from billing.models import CreditAccount, CreditTransaction
from billing.observability.logging import log_billing_event
from billing.observability.metrics import (
    CREDITS_CREDITED,
    CREDITS_DEBITED,
    INSUFFICIENT_CREDIT_REJECTIONS,
)

logger = logging.getLogger(__name__)

User = get_user_model()

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


class CreditLedgerError(Exception):
    """Base exception for credit ledger operations."""

    code = "CREDIT_LEDGER_ERROR"
    status_code = 400


class InvalidCreditAmount(CreditLedgerError):
    """Raised when a credit or debit amount is not a positive integer."""

    code = "VALIDATION_ERROR"
    status_code = 400


class CreditAccountNotFound(CreditLedgerError):
    """Raised when the user (and therefore the balance) does not exist."""

    code = "USER_NOT_FOUND"
    status_code = 404


class InsufficientCredits(CreditLedgerError):
    """Raised when the balance cannot cover the requested amount."""

    code = "INSUFFICIENT_CREDITS"
    status_code = 402

    def __init__(self, required: int, available: int, message: Optional[str] = None):
        self.required = required
        self.available = available
        super().__init__(
            message
            or f"Insufficient credits. You need {required} credits but have {available} credits."
        )


class LedgerInvariantViolation(CreditLedgerError):
    """Raised when a computed ledger row would break the balance arithmetic."""

    code = "LEDGER_INVARIANT_VIOLATION"
    status_code = 500


@dataclass(frozen=True)
class ReplayReport:
    user_id: str
    initial_balance: int
    replayed_balance: int
    current_balance: int
    entries: int
    broken_links: List[str] = field(default_factory=list)

    @property
    def consistent(self) -> bool:
        return not self.broken_links and self.replayed_balance == self.current_balance


def check_balance(user_id) -> int:
    """Return the user's current balance without locking or writing anything."""

    return _read_account(user_id).balance


def add_credits(
    user_id,
    amount: int,
    operation_type: str,
    description: str,
) -> CreditTransaction:
    """Credit ``amount`` to the user and append one ledger row."""

    _require_positive(amount, "Credit addition amount must be positive")

    with transaction.atomic():
        account = _lock_account(user_id)
        entry = _apply(account, amount, operation_type, description, related_entity_id=None)

    CREDITS_CREDITED.labels(operation_type=operation_type).inc(amount)
    log_billing_event(
        message="credits.added",
        user_id=str(entry.user_id),
        operation=operation_type,
        extra={
            "amount": amount,
            "balance_before": entry.balance_before,
            "balance_after": entry.balance_after,
            "transaction_id": str(entry.id),
        },
    )
    return entry


def deduct_credits_or_fail(
    user_id,
    amount: int,
    operation_type: str,
    description: str,
    related_entity_id=None,
) -> CreditTransaction:
    """Debit ``amount`` from the user or raise ``InsufficientCredits``.

    The caller passes a positive magnitude; the ledger row stores it negated.
    A failed call leaves the balance untouched and appends nothing.
    """

    _require_positive(amount, "Credit deduction amount must be positive")

    try:
        with transaction.atomic():
            account = _lock_account(user_id)
            if account.balance < amount:
                raise InsufficientCredits(required=amount, available=account.balance)
            entry = _apply(account, -amount, operation_type, description, related_entity_id)
    except InsufficientCredits as exc:
        INSUFFICIENT_CREDIT_REJECTIONS.labels(operation_type=operation_type).inc()
        logger.info(
            f"Credit deduction rejected for user {user_id}: required={exc.required} available={exc.available}"
        )
        raise

    CREDITS_DEBITED.labels(operation_type=operation_type).inc(amount)
    log_billing_event(
        message="credits.deducted",
        user_id=str(entry.user_id),
        operation=operation_type,
        extra={
            "amount": amount,
            "balance_before": entry.balance_before,
            "balance_after": entry.balance_after,
            "transaction_id": str(entry.id),
            "related_entity_id": str(related_entity_id) if related_entity_id else None,
        },
    )
    return entry


def get_transaction_history(
    user_id,
    *,
    page: int = 1,
    limit: int = DEFAULT_PAGE_SIZE,
    operation_type: Optional[str] = None,
) -> Tuple[List[CreditTransaction], int]:
    """Return one page of the user's ledger, newest first, plus the total count."""

    queryset = CreditTransaction.objects.filter(user_id=user_id)
    if operation_type:
        queryset = queryset.filter(operation_type=operation_type)
    return _paginate(queryset, page, limit, ordering=("-sequence",))


def get_all_transactions(
    *,
    page: int = 1,
    limit: int = DEFAULT_PAGE_SIZE,
    user_id=None,
    operation_type: Optional[str] = None,
) -> Tuple[List[CreditTransaction], int]:
    """Cross-user ledger listing for administrative reporting."""

    queryset = CreditTransaction.objects.all()
    if user_id:
        queryset = queryset.filter(user_id=user_id)
    if operation_type:
        queryset = queryset.filter(operation_type=operation_type)
    return _paginate(queryset, page, limit)


def replay_balance(user_id, initial_balance: int = 0) -> ReplayReport:
    """Replay the user's ledger in sequence order and compare with the stored balance."""

    account = _read_account(user_id)
    entries = CreditTransaction.objects.filter(user_id=account.user_id).order_by("sequence")

    running = initial_balance
    broken: List[str] = []
    count = 0
    for entry in entries.iterator():
        count += 1
        if entry.balance_before != running or entry.balance_after != entry.balance_before + entry.amount:
            broken.append(str(entry.id))
        running = running + entry.amount

    return ReplayReport(
        user_id=str(account.user_id),
        initial_balance=initial_balance,
        replayed_balance=running,
        current_balance=account.balance,
        entries=count,
        broken_links=broken,
    )


def _apply(
    account: CreditAccount,
    signed_amount: int,
    operation_type: str,
    description: str,
    related_entity_id,
) -> CreditTransaction:
    balance_before = account.balance or 0
    balance_after = balance_before + signed_amount

    if balance_after < 0:
        raise InsufficientCredits(required=-signed_amount, available=balance_before)

    last_sequence = CreditTransaction.objects.filter(user_id=account.user_id).aggregate(last=Max("sequence"))["last"]

    account.balance = balance_after
    account.save(update_fields=["balance", "updated_at"])

    entry = CreditTransaction.objects.create(
        user_id=account.user_id,
        amount=signed_amount,
        operation_type=operation_type,
        description=(description or "")[:500],
        related_entity_id=related_entity_id,
        balance_before=balance_before,
        balance_after=balance_after,
        sequence=(last_sequence or 0) + 1,
    )

    if entry.balance_after != entry.balance_before + entry.amount or entry.balance_after < 0:
        raise LedgerInvariantViolation(
            f"Ledger row {entry.id} breaks balance arithmetic: "
            f"{entry.balance_before} + {entry.amount} != {entry.balance_after}"
        )
    return entry


def _paginate(queryset, page, limit, ordering=("-created_at", "-sequence")) -> Tuple[List[CreditTransaction], int]:
    page = max(int(page or 1), 1)
    limit = min(max(int(limit or DEFAULT_PAGE_SIZE), 1), MAX_PAGE_SIZE)
    offset = (page - 1) * limit

    ordered = queryset.order_by(*ordering)
    total = ordered.count()
    return list(ordered[offset:offset + limit]), total


def _require_positive(amount, message: str) -> None:
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise InvalidCreditAmount(message)


def _get_user(user_id):
    try:
        return User.objects.get(pk=user_id, deleted_at__isnull=True)
    except (User.DoesNotExist, ValueError) as exc:
        raise CreditAccountNotFound("User not found") from exc


def _get_account(user_id) -> CreditAccount:
    user = _get_user(user_id)
    account, _ = CreditAccount.objects.get_or_create(user=user)
    return account


def _lock_account(user_id) -> CreditAccount:
    account = _get_account(user_id)
    return CreditAccount.objects.select_for_update().get(pk=account.pk)


def _read_account(user_id) -> CreditAccount:
    user = _get_user(user_id)
    try:
        return CreditAccount.objects.get(user=user)
    except CreditAccount.DoesNotExist as exc:
        raise CreditAccountNotFound("Credit account not found") from exc
