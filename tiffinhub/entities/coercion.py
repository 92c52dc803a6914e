"""Normalization of loosely typed request payloads before they reach the ORM.

Form-driven clients send every value as a string. Three passes run in order,
each touching only its own field set: empty-string sanitization (with numeric
parsing), boolean coercion and date coercion.
"""

from __future__ import annotations

import math
from typing import Any, Dict

from ..utils.dates import parse_datetime

DATE_FIELDS = frozenset({
    "start_date", "end_date", "due_date", "last_payment_date", "deleted_at",
    "pause_start", "pause_end", "trial_ends_at", "subscription_ends_at",
    "current_period_end", "next_billing_date", "cancelled_at",
    "trial_cancelled_at", "subscription_start_date", "payment_date",
    "expires_at", "paid_at", "trial_end_date", "period_start", "period_end",
    "given_date", "last_reminder", "delivered_at", "prepared_at",
    "resolved_at", "resolved_date",
})

BOOLEAN_FIELDS = frozenset({
    "active", "is_deleted", "is_paused", "skip_weekends", "is_active",
    "is_critical", "carry_forward_applied", "read", "is_read", "email_sent",
    "notification_sent", "reminder_before_sent", "reminder_after_sent",
    "is_trial", "trial_converted", "deposit_paid", "discount_applied",
})

NUMERIC_FIELDS = frozenset({
    "payment_amount", "last_payment_amount", "paid_days", "delivered_days",
    "days_remaining", "meals_delivered", "tiffin_balance", "roti_quantity",
    "total_pause_days", "price", "current_stock", "min_stock_threshold",
    "cost_per_unit", "total_value", "total_cost", "cost_per_serving",
    "quantity", "cost_value", "amount", "tax_amount", "total_amount",
    "platform_fee_amount", "net_amount", "discount_amount", "billing_amount",
    "capacity", "given_count", "returned_count", "outstanding",
    "deposit_amount", "count", "quantity_prepared", "cost_per_meal", "rating",
    "total_orders", "delivered_count", "fee_percentage",
})

TYPED_FIELDS = DATE_FIELDS | BOOLEAN_FIELDS | NUMERIC_FIELDS

TRUE_STRINGS = ("true", "1")


def parse_number(raw: str):
    text = raw.strip()
    if not text:
        return None
    try:
        return int(text)
    except ValueError:
        pass
    try:
        value = float(text)
    except ValueError:
        return None
    if not math.isfinite(value):
        return None
    return value


def sanitize_empty_strings(data: Dict[str, Any]) -> Dict[str, Any]:
    for key, value in data.items():
        if key not in TYPED_FIELDS:
            continue
        if value == "":
            data[key] = None
        elif key in NUMERIC_FIELDS and isinstance(value, str):
            data[key] = parse_number(value)
        elif key in NUMERIC_FIELDS and isinstance(value, float) and not math.isfinite(value):
            data[key] = None
    return data


def coerce_booleans(data: Dict[str, Any]) -> Dict[str, Any]:
    for key, value in data.items():
        if key in BOOLEAN_FIELDS and isinstance(value, str):
            data[key] = value in TRUE_STRINGS
    return data


def coerce_dates(data: Dict[str, Any]) -> Dict[str, Any]:
    for key, value in data.items():
        if key in DATE_FIELDS and isinstance(value, str):
            data[key] = parse_datetime(value)
    return data


def coerce_payload(data: Dict[str, Any]) -> Dict[str, Any]:
    """Run all passes over a copy of ``data`` and return it."""
    result = dict(data)
    sanitize_empty_strings(result)
    coerce_booleans(result)
    coerce_dates(result)
    return result
