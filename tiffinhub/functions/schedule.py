from __future__ import annotations

from datetime import datetime, timedelta
from typing import Iterable, Optional, Tuple

from ..models import Customer

WEEKEND_DAYS = (5, 6)
MEALS = ("Breakfast", "Lunch", "Dinner")


def day_key(value: datetime) -> str:
    return value.strftime("%Y-%m-%d")


def is_weekend(value: datetime) -> bool:
    return value.weekday() in WEEKEND_DAYS


def delivery_block_reason(customer: Customer, day: datetime, skipped: bool) -> Optional[str]:
    """Why ``customer`` gets no tiffin on ``day``, or None when it should go out."""
    if not customer.active:
        return "Service inactive"
    if (customer.delivered_days or 0) >= (customer.paid_days or 30):
        return "All paid days delivered"
    if customer.start_date and day < customer.start_date:
        return "Before service start date"
    if customer.status == "paused" and customer.pause_start and customer.pause_end:
        if customer.pause_start <= day <= customer.pause_end:
            return "Service paused"
    if skipped:
        return "Date is skipped"
    if customer.skip_weekends and is_weekend(day):
        return "Weekend skip enabled"
    return None


def project_end_date(start: datetime, paid_days: int, skip_dates: Iterable[str], skip_weekends: bool) -> datetime:
    """Walk forward from ``start`` until ``paid_days`` delivery days are used up."""
    skips = set(skip_dates)
    current = start
    delivered = 0
    while delivered < paid_days:
        if day_key(current) not in skips and not (skip_weekends and is_weekend(current)):
            delivered += 1
        current += timedelta(days=1)
    return current - timedelta(days=1)


def meals_per_day(meal_type: Optional[str]) -> int:
    meal_type = meal_type or "Lunch"
    return sum(1 for meal in MEALS if meal in meal_type) or 1


def carry_forward(skipped_meals: int, meal_type: Optional[str]) -> Tuple[int, int]:
    """Split skipped meals into whole extra days and leftover meals."""
    return divmod(skipped_meals, meals_per_day(meal_type))
