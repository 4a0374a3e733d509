import threading
import uuid
from unittest import mock

import pytest
from django.core.exceptions import ValidationError
from django.db import connection
from django.utils import timezone

from billing.models import CreditAccount, CreditTransaction
from billing.services.credit_ledger import (
    CreditAccountNotFound,
    InsufficientCredits,
    InvalidCreditAmount,
    add_credits,
    check_balance,
    deduct_credits_or_fail,
    get_all_transactions,
    get_transaction_history,
    replay_balance,
)

OperationType = CreditTransaction.OperationType


@pytest.mark.django_db
def test_add_and_deduct_keep_balance_arithmetic(user):
    add_credits(user.pk, 20, OperationType.ADMIN_ADJUSTMENT, "Top-up")
    entry = deduct_credits_or_fail(user.pk, 5, OperationType.IMAGE_GENERATION, "Single image generation")

    assert entry.amount == -5
    assert entry.balance_before == 20
    assert entry.balance_after == 15
    assert check_balance(user.pk) == 15

    for row in CreditTransaction.objects.filter(user=user):
        assert row.balance_after == row.balance_before + row.amount


@pytest.mark.django_db
def test_deduct_records_related_entity(user):
    add_credits(user.pk, 10, OperationType.ADMIN_ADJUSTMENT, "Top-up")
    record_id = uuid.uuid4()

    entry = deduct_credits_or_fail(
        user.pk, 5, OperationType.IMAGE_GENERATION, f"Single image generation: {record_id}", related_entity_id=record_id
    )

    assert entry.related_entity_id == record_id


@pytest.mark.django_db
def test_insufficient_credits_leaves_state_untouched(user):
    add_credits(user.pk, 3, OperationType.ADMIN_ADJUSTMENT, "Top-up")

    with pytest.raises(InsufficientCredits) as exc:
        deduct_credits_or_fail(user.pk, 5, OperationType.IMAGE_GENERATION, "Single image generation")

    assert exc.value.required == 5
    assert exc.value.available == 3
    assert exc.value.code == "INSUFFICIENT_CREDITS"
    assert str(exc.value) == "Insufficient credits. You need 5 credits but have 3 credits."
    assert check_balance(user.pk) == 3
    assert CreditTransaction.objects.filter(user=user).count() == 1


@pytest.mark.django_db
def test_deducting_the_whole_balance_reaches_zero(user):
    add_credits(user.pk, 5, OperationType.ADMIN_ADJUSTMENT, "Top-up")

    entry = deduct_credits_or_fail(user.pk, 5, OperationType.IMAGE_GENERATION, "Single image generation")

    assert entry.balance_after == 0
    assert check_balance(user.pk) == 0


@pytest.mark.django_db
@pytest.mark.parametrize("amount", [0, -5, 2.5, "5", True])
def test_non_positive_or_non_integer_amounts_are_rejected(user, amount):
    with pytest.raises(InvalidCreditAmount):
        add_credits(user.pk, amount, OperationType.ADMIN_ADJUSTMENT, "Top-up")
    with pytest.raises(InvalidCreditAmount):
        deduct_credits_or_fail(user.pk, amount, OperationType.IMAGE_GENERATION, "Debit")

    assert not CreditTransaction.objects.filter(user=user).exists()


@pytest.mark.django_db
def test_unknown_or_deleted_user_is_not_found(user):
    with pytest.raises(CreditAccountNotFound):
        check_balance(987654)

    user.soft_delete()
    with pytest.raises(CreditAccountNotFound) as exc:
        add_credits(user.pk, 5, OperationType.ADMIN_ADJUSTMENT, "Top-up")
    assert exc.value.code == "USER_NOT_FOUND"


@pytest.mark.django_db
def test_history_is_newest_first_and_paginated(user):
    for amount in (1, 2, 3):
        add_credits(user.pk, amount, OperationType.ADMIN_ADJUSTMENT, f"Top-up {amount}")
    deduct_credits_or_fail(user.pk, 4, OperationType.IMAGE_GENERATION, "Debit")

    entries, total = get_transaction_history(user.pk, page=1, limit=3)
    assert total == 4
    assert [entry.balance_after for entry in entries] == [2, 6, 3]

    second_page, _ = get_transaction_history(user.pk, page=2, limit=3)
    assert [entry.amount for entry in second_page] == [1]


@pytest.mark.django_db
def test_history_filters_by_operation_type(user):
    add_credits(user.pk, 10, OperationType.ADMIN_ADJUSTMENT, "Top-up")
    deduct_credits_or_fail(user.pk, 5, OperationType.IMAGE_GENERATION, "Debit")
    deduct_credits_or_fail(user.pk, 5, OperationType.BULK_GENERATION, "Debit")

    entries, total = get_transaction_history(user.pk, operation_type=OperationType.BULK_GENERATION)

    assert total == 1
    assert entries[0].operation_type == OperationType.BULK_GENERATION


@pytest.mark.django_db
def test_page_size_is_clamped(user):
    add_credits(user.pk, 1, OperationType.ADMIN_ADJUSTMENT, "Top-up")

    entries, total = get_transaction_history(user.pk, page=0, limit=1000)

    assert total == 1
    assert len(entries) == 1


@pytest.mark.django_db
def test_all_transactions_spans_users(make_user):
    first = make_user(balance=10)
    second = make_user(balance=7)

    entries, total = get_all_transactions()
    assert total == 2

    entries, total = get_all_transactions(user_id=second.pk)
    assert total == 1
    assert entries[0].user_id == second.pk
    assert first.pk != second.pk


@pytest.mark.django_db
def test_replay_matches_stored_balance(user):
    add_credits(user.pk, 10, OperationType.SIGNUP_BONUS, "Signup bonus")
    deduct_credits_or_fail(user.pk, 5, OperationType.IMAGE_GENERATION, "Debit")
    add_credits(user.pk, 3, OperationType.REFUND, "Refund")

    report = replay_balance(user.pk)

    assert report.consistent
    assert report.entries == 3
    assert report.replayed_balance == report.current_balance == 8


@pytest.mark.django_db
def test_replay_detects_out_of_band_balance_change(user):
    add_credits(user.pk, 10, OperationType.ADMIN_ADJUSTMENT, "Top-up")
    CreditAccount.objects.filter(user=user).update(balance=50)

    report = replay_balance(user.pk)

    assert not report.consistent
    assert report.replayed_balance == 10
    assert report.current_balance == 50


@pytest.mark.django_db
def test_rows_sharing_a_timestamp_keep_ledger_order(user):
    frozen = timezone.now()
    with mock.patch("django.utils.timezone.now", return_value=frozen):
        add_credits(user.pk, 10, OperationType.ADMIN_ADJUSTMENT, "Top-up")
        add_credits(user.pk, 3, OperationType.REFUND, "Refund")
        deduct_credits_or_fail(user.pk, 4, OperationType.IMAGE_GENERATION, "Debit")

    entries, _ = get_transaction_history(user.pk)

    assert {entry.created_at for entry in entries} == {frozen}
    assert [entry.sequence for entry in entries] == [3, 2, 1]
    assert [entry.balance_after for entry in entries] == [9, 13, 10]
    assert replay_balance(user.pk).consistent


@pytest.mark.django_db
def test_sequence_is_numbered_per_user(make_user):
    first = make_user(balance=5)
    second = make_user(balance=5)
    add_credits(first.pk, 1, OperationType.REFUND, "Refund")

    sequences = CreditTransaction.objects.filter(user=first).order_by("sequence").values_list("sequence", flat=True)
    assert list(sequences) == [1, 2]
    assert CreditTransaction.objects.get(user=second).sequence == 1


@pytest.mark.django_db
def test_check_balance_never_opens_an_account(user):
    CreditAccount.objects.filter(user=user).delete()

    with pytest.raises(CreditAccountNotFound):
        check_balance(user.pk)
    with pytest.raises(CreditAccountNotFound):
        replay_balance(user.pk)

    assert not CreditAccount.objects.filter(user=user).exists()


@pytest.mark.django_db
def test_mutations_emit_structured_billing_events(user):
    with mock.patch("billing.observability.logging.logger") as billing_logger:
        entry = add_credits(user.pk, 7, OperationType.ADMIN_ADJUSTMENT, "Top-up")

    billing_logger.info.assert_called_once_with(
        {
            "message": "credits.added",
            "user_id": str(user.pk),
            "operation": OperationType.ADMIN_ADJUSTMENT,
            "amount": 7,
            "balance_before": 0,
            "balance_after": 7,
            "transaction_id": str(entry.id),
        }
    )


@pytest.mark.django_db
def test_ledger_rows_are_immutable(user):
    entry = add_credits(user.pk, 10, OperationType.ADMIN_ADJUSTMENT, "Top-up")

    entry.description = "rewritten"
    with pytest.raises(ValidationError):
        entry.save()
    with pytest.raises(ValidationError):
        entry.delete()

    assert CreditTransaction.objects.get(pk=entry.pk).description == "Top-up"


@pytest.mark.django_db(transaction=True)
def test_concurrent_deductions_never_overdraw(make_user):
    user = make_user(balance=25)
    outcomes = []
    outcomes_lock = threading.Lock()
    start = threading.Barrier(8)

    def worker():
        start.wait()
        try:
            deduct_credits_or_fail(user.pk, 5, OperationType.IMAGE_GENERATION, "Concurrent debit")
            result = "ok"
        except InsufficientCredits:
            result = "rejected"
        finally:
            connection.close()
        with outcomes_lock:
            outcomes.append(result)

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert outcomes.count("ok") == 5
    assert outcomes.count("rejected") == 3
    assert check_balance(user.pk) == 0
    assert replay_balance(user.pk).consistent
