"""Prometheus metrics helpers for the credit ledger and generation pipeline."""
from __future__ import annotations

from prometheus_client import Counter, Histogram

CREDITS_DEBITED = Counter(
    "billing_credits_debited_total",
    "Credits deducted from user balances",
    labelnames=("operation_type",),
)

CREDITS_CREDITED = Counter(
    "billing_credits_credited_total",
    "Credits added to user balances",
    labelnames=("operation_type",),
)

INSUFFICIENT_CREDIT_REJECTIONS = Counter(
    "billing_insufficient_credits_total",
    "Operations rejected because the balance could not cover the cost",
    labelnames=("operation_type",),
)

GENERATION_ATTEMPTS = Counter(
    "generation_attempts_total",
    "Image generation attempts by outcome",
    labelnames=("generation_type", "status"),
)

GENERATION_LATENCY = Histogram(
    "generation_duration_seconds",
    "Wall-clock duration of a single image generation attempt",
    labelnames=("generation_type",),
    buckets=(1, 2.5, 5, 10, 20, 30, 60, 120),
)
