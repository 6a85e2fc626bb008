# lab_core/tests/test_sla.py
from __future__ import annotations

from datetime import date, datetime, timedelta

import pytest

from lab_core.models import Sample
from lab_core.workflows.sla import (
    SLA_AT_RISK,
    SLA_BREACHED,
    SLA_ON_TIME,
    business_days_for,
    calculate_sla_status,
    compute_due_date,
)
from lab_core.workflows.sla_scanner import sla_stats, update_all_sla_statuses


# ---------------------------------------------------------------
# Due date computation
# ---------------------------------------------------------------
def test_due_date_from_monday():
    assert compute_due_date(date(2024, 1, 1), "express") == date(2024, 1, 5)
    assert compute_due_date(date(2024, 1, 1), "normal") == date(2024, 1, 12)


def test_due_date_from_friday_skips_weekend():
    friday = date(2024, 1, 5)
    due = compute_due_date(friday, "express")

    assert due == friday + timedelta(days=6)
    assert due.weekday() not in (5, 6)


def test_due_date_received_on_weekend():
    saturday = date(2024, 1, 6)
    assert compute_due_date(saturday, "express") == date(2024, 1, 11)


def test_due_date_never_lands_on_weekend():
    start = date(2024, 3, 1)
    for offset in range(14):
        for sla_type in ("normal", "express"):
            assert compute_due_date(start + timedelta(days=offset), sla_type).weekday() < 5


def test_unknown_sla_type_is_normal():
    assert business_days_for("urgent") == 9
    assert business_days_for(None) == 9
    assert business_days_for(" EXPRESS ") == 4
    assert compute_due_date(date(2024, 1, 1), "weird") == date(2024, 1, 12)


def test_datetime_is_reduced_to_date():
    assert compute_due_date(datetime(2024, 1, 1, 23, 59), "express") == date(2024, 1, 5)


# ---------------------------------------------------------------
# Classification
# ---------------------------------------------------------------
@pytest.mark.parametrize(
    "due, status, expected",
    [
        (date(2024, 1, 9), "processing", SLA_BREACHED),
        (date(2024, 1, 10), "processing", SLA_AT_RISK),
        (date(2024, 1, 11), "processing", SLA_AT_RISK),
        (date(2024, 1, 12), "processing", SLA_ON_TIME),
        (date(2024, 1, 1), "completed", SLA_ON_TIME),
        (date(2024, 1, 1), "COMPLETED", SLA_ON_TIME),
        (None, "received", SLA_ON_TIME),
    ],
)
def test_calculate_sla_status(due, status, expected):
    assert calculate_sla_status(due, status, today=date(2024, 1, 10)) == expected


# ---------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------
@pytest.mark.django_db
def test_sample_save_derives_due_date(make_sample):
    s = make_sample(received_date=date(2024, 1, 1), sla_type="express")
    assert s.due_date == date(2024, 1, 5)

    s.received_date = date(2024, 1, 5)
    s.save()
    s.refresh_from_db()
    assert s.due_date == date(2024, 1, 11)

    s.sla_type = "normal"
    s.save(update_fields=["sla_type"])
    s.refresh_from_db()
    assert s.due_date == compute_due_date(date(2024, 1, 5), "normal")


@pytest.mark.django_db
def test_sample_save_ignores_supplied_due_date(make_sample):
    s = make_sample(received_date=date(2024, 1, 1), sla_type="express", due_date=date(2030, 1, 1))
    assert s.due_date == date(2024, 1, 5)


@pytest.mark.django_db
def test_update_all_sla_statuses_only_writes_changes(make_sample):
    a = make_sample(received_date=date(2024, 1, 1))
    b = make_sample(received_date=date(2024, 1, 8), sla_type="express")
    done = make_sample(received_date=date(2024, 1, 1))
    Sample.objects.filter(pk=done.pk).update(status="completed", sla_status=SLA_ON_TIME)
    Sample.objects.filter(pk__in=[a.pk, b.pk]).update(sla_status=SLA_ON_TIME)

    # both due 2024-01-12
    outcome = update_all_sla_statuses(today=date(2024, 1, 11))
    assert outcome == {"updated": 2, "errors": 0}
    assert set(Sample.objects.filter(pk__in=[a.pk, b.pk]).values_list("sla_status", flat=True)) == {SLA_AT_RISK}

    outcome = update_all_sla_statuses(today=date(2024, 1, 20))
    assert outcome == {"updated": 2, "errors": 0}
    a.refresh_from_db()
    assert a.sla_status == SLA_BREACHED

    assert update_all_sla_statuses(today=date(2024, 1, 20)) == {"updated": 0, "errors": 0}

    done.refresh_from_db()
    assert done.sla_status == SLA_ON_TIME


@pytest.mark.django_db
def test_sla_stats_counts_open_samples(make_sample):
    make_sample(sla_type="express")
    make_sample()
    closed = make_sample()
    Sample.objects.update(sla_status=SLA_ON_TIME)
    Sample.objects.filter(pk=closed.pk).update(status="completed")
    Sample.objects.filter(sla_type="express").update(sla_status=SLA_BREACHED)

    stats = sla_stats()

    assert stats == {"total": 2, "on_time": 1, "at_risk": 0, "breached": 1, "express": 1}
