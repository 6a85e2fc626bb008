# lab_core/workflows/sla_scanner.py
from __future__ import annotations

import logging

from django.db import DatabaseError, transaction
from django.db.models import Count, Q
from django.utils import timezone

from lab_core.models import Sample
from lab_core.workflows.sla import (
    SLA_AT_RISK,
    SLA_BREACHED,
    SLA_EXPRESS,
    SLA_ON_TIME,
    calculate_sla_status,
)

logger = logging.getLogger(__name__)


def _open_samples():
    return Sample.objects.exclude(status="completed").filter(due_date__isnull=False)


def update_all_sla_statuses(*, today=None) -> dict:
    """
    Reclassify every open sample against its due date.

    Only rows whose classification changed are written. A failure on one
    row is logged and counted; the scan continues.

    Returns:
        {"updated": int, "errors": int}
    """
    today = today or timezone.localdate()
    updated = 0
    errors = 0

    rows = _open_samples().values_list("pk", "due_date", "status", "sla_status")
    for pk, due_date, status, current in rows.iterator():
        new_status = calculate_sla_status(due_date, status, today=today)
        if new_status == current:
            continue

        try:
            with transaction.atomic():
                Sample.objects.filter(pk=pk).update(sla_status=new_status)
            updated += 1
        except DatabaseError:
            logger.exception("SLA status update failed for sample %s", pk)
            errors += 1

    logger.info("SLA refresh finished: %s updated, %s errors", updated, errors)
    return {"updated": updated, "errors": errors}


def sla_stats() -> dict:
    """
    Counts per SLA classification over open samples.
    """
    agg = _open_samples().aggregate(
        total=Count("pk"),
        on_time=Count("pk", filter=Q(sla_status=SLA_ON_TIME)),
        at_risk=Count("pk", filter=Q(sla_status=SLA_AT_RISK)),
        breached=Count("pk", filter=Q(sla_status=SLA_BREACHED)),
        express=Count("pk", filter=Q(sla_type=SLA_EXPRESS)),
    )
    return {k: agg[k] or 0 for k in ("total", "on_time", "at_risk", "breached", "express")}
