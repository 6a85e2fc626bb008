# lab_core/workflows/transition_service.py
from __future__ import annotations

import logging

from django.db import transaction
from django.utils import timezone

from lab_core.models import Sample, StatusTransition
from lab_core.workflows import normalize_state, validate_sample_transition
from lab_core.workflows.sla import calculate_sla_status

logger = logging.getLogger(__name__)


def apply_status_change(*, sample_id: int, to_status: str, by_user=None, reason: str = "", now=None) -> dict:
    """
    Atomically:
      1) Lock the sample row and read its status
      2) Append the StatusTransition row
      3) Update sample.status (and its SLA classification)

    Same-status requests are no-ops and append nothing. This is the only
    code path allowed to change Sample.status.
    """
    now = now or timezone.now()
    target = normalize_state(to_status)

    with transaction.atomic():
        sample = Sample.objects.select_for_update().get(pk=sample_id)
        current = normalize_state(sample.status)

        validate_sample_transition(current, target)

        if current == target:
            return {
                "changed": False,
                "sample_id": sample.pk,
                "from_status": current,
                "to_status": target,
                "transition_id": None,
            }

        user = by_user if getattr(by_user, "is_authenticated", False) else None
        t = StatusTransition.objects.create(
            sample=sample,
            from_status=current,
            to_status=target,
            by_user=user,
            reason=reason or "",
        )

        # Queryset update skips the model write guard.
        Sample.objects.filter(pk=sample.pk).update(
            status=target,
            sla_status=calculate_sla_status(sample.due_date, target, today=timezone.localdate()),
            updated_at=now,
        )

    logger.info(
        "Sample %s status %s -> %s (transition %s)",
        sample.pk, current, target, t.pk,
    )
    return {
        "changed": True,
        "sample_id": sample.pk,
        "from_status": current,
        "to_status": target,
        "transition_id": t.pk,
    }
