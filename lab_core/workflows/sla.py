# lab_core/workflows/sla.py
from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Dict, Optional, Union

"""
Authoritative SLA definitions and helpers.

This module is PURE LOGIC + DATA.
- No Django imports
- Safe to import at startup
- Due dates are always derived from (received_date, sla_type)
- UI and API must consume computed SLA status, not raw rules
"""

# ===============================================================
# SLA DEFINITIONS
# ===============================================================
# Business days granted per SLA class. Saturdays and Sundays never
# count; holidays are not modelled.
# ===============================================================

SLA_NORMAL = "normal"
SLA_EXPRESS = "express"

SLA_BUSINESS_DAYS: Dict[str, int] = {
    SLA_EXPRESS: 4,
    SLA_NORMAL: 9,
}

SLA_ON_TIME = "on_time"
SLA_AT_RISK = "at_risk"
SLA_BREACHED = "breached"

SLA_STATUSES = (SLA_ON_TIME, SLA_AT_RISK, SLA_BREACHED)

# date.weekday(): Monday=0 .. Sunday=6
_WEEKEND = {5, 6}

DateLike = Union[date, datetime]


def normalize_sla_type(value: Optional[str]) -> str:
    v = (value or "").strip().lower()
    return v if v in SLA_BUSINESS_DAYS else SLA_NORMAL


def business_days_for(sla_type: Optional[str]) -> int:
    return SLA_BUSINESS_DAYS[normalize_sla_type(sla_type)]


def _as_date(value: DateLike) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value


# ===============================================================
# PUBLIC API
# ===============================================================

def compute_due_date(received_date: DateLike, sla_type: Optional[str]) -> date:
    """
    Return the due date for a sample received on `received_date`.

    Walks forward one calendar day at a time from the received date,
    counting only weekdays, until the SLA's business-day budget is
    spent. The day reached is the due date.

    Args:
        received_date: calendar day of reception (datetime is truncated)
        sla_type: "normal" or "express" (case-insensitive, unknown -> normal)
    """
    target = business_days_for(sla_type)
    current = _as_date(received_date)

    counted = 0
    while counted < target:
        current += timedelta(days=1)
        if current.weekday() not in _WEEKEND:
            counted += 1

    return current


def calculate_sla_status(
    due_date: Optional[DateLike],
    current_status: Optional[str],
    today: Optional[DateLike] = None,
) -> str:
    """
    Classify a sample against its due date.

    - completed samples are always on time
    - past the due date -> breached
    - due today or tomorrow -> at_risk
    - otherwise -> on_time
    """
    if (current_status or "").strip().lower() == "completed":
        return SLA_ON_TIME

    if due_date is None:
        return SLA_ON_TIME

    today = _as_date(today) if today is not None else date.today()
    remaining = (_as_date(due_date) - today).days

    if remaining < 0:
        return SLA_BREACHED
    if remaining <= 1:
        return SLA_AT_RISK
    return SLA_ON_TIME
