# Overview: Lifecycle status of perishable stock derived from its expiry date.

from __future__ import annotations

from datetime import date

FRESH = "fresh"
EXPIRING = "expiring"
EXPIRED = "expired"

STATUSES = (FRESH, EXPIRING, EXPIRED)

DEFAULT_WARNING_WINDOW_DAYS = 7


def classify(expiry_date: date, today: date, warning_window_days: int = DEFAULT_WARNING_WINDOW_DAYS) -> str:
    """
    expired:  expiry_date < today
    expiring: 0 <= days until expiry <= warning_window_days
    fresh:    otherwise
    """
    days_left = (expiry_date - today).days
    if days_left < 0:
        return EXPIRED
    if days_left <= warning_window_days:
        return EXPIRING
    return FRESH
