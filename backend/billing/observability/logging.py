"""Structured logging helper for credit ledger mutations."""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

logger = logging.getLogger("billing")


def log_billing_event(*, message: str, user_id: Optional[str] = None, operation: Optional[str] = None,
                      extra: Optional[Dict[str, Any]] = None) -> None:
    payload: Dict[str, Any] = {"message": message}
    if user_id:
        payload["user_id"] = user_id
    if operation:
        payload["operation"] = operation
    if extra:
        payload.update(extra)
    logger.info(payload)
