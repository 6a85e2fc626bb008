# lab_core/tasks.py
from __future__ import annotations

from celery import shared_task

from lab_core.workflows.sla_scanner import update_all_sla_statuses


@shared_task
def refresh_sla_statuses() -> dict:
    return update_all_sla_statuses()
