"""Expose commonly used billing services."""

from .credit_ledger import (
    CreditAccountNotFound,
    CreditLedgerError,
    InsufficientCredits,
    InvalidCreditAmount,
    LedgerInvariantViolation,
    add_credits,
    check_balance,
    deduct_credits_or_fail,
    get_all_transactions,
    get_transaction_history,
    replay_balance,
)
