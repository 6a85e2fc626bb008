# lab_core/services/results.py
"""
Result persistence on top of the lifecycle rules in
lab_core.workflows.result_lifecycle.

All status-affecting writes lock the parent sample row first, the same
lock sample edits take.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping

from django.db import transaction
from django.utils import timezone

from lab_core.findings import AnalysisArea, classify_area, encode_findings, validate_findings
from lab_core.findings.lookups import load_lookups
from lab_core.findings.registry import nematology_kind
from lab_core.models import Result, Sample
from lab_core.permissions import role_for_user
from lab_core.services.samples import run_with_conflict_retry
from lab_core.workflows import is_validator, normalize_state
from lab_core.workflows.errors import (
    DerivedFieldSupplied,
    FindingsIncomplete,
    InvalidTransition,
    RoleNotPermitted,
)
from lab_core.workflows.result_lifecycle import (
    DERIVED_FIELDS,
    VALIDATED,
    ensure_can_delete,
    plan_result_creation,
    plan_result_update,
)

logger = logging.getLogger(__name__)


def prepare_findings(area: Any, raw: Any, result_type: Any = ""):
    """
    Encode and validate a findings draft for storage.

    Blank input stores nothing. A draft with no qualifying rows for a
    known area raises FindingsIncomplete. `result_type` is the result's
    own column; nematology drafts are encoded as its variant.
    """
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        return None

    encoded = encode_findings(area, raw, load_lookups(area, raw), result_type=result_type)
    if encoded is None:
        raise FindingsIncomplete(classify_area(area).value)

    validate_findings(encoded)
    return encoded


def _area_of(sample_test) -> str:
    return sample_test.test.area


def _lock_sample(sample_id: int) -> Sample:
    return Sample.objects.select_for_update().get(pk=sample_id)


def _check_stored_findings(result: Result, result_type: Any) -> None:
    # A new result_type must still agree with the nematology variant on file
    stored = result.findings
    if isinstance(stored, Mapping) and classify_area(_area_of(result.sample_test)) is AnalysisArea.NEMATOLOGY:
        nematology_kind(stored, result_type)


# ===============================================================
# Create
# ===============================================================

def create_result(*, data: Mapping[str, Any], user=None) -> Result:
    derived = (DERIVED_FIELDS | {"validated_by"}).intersection(data)
    if derived:
        raise DerivedFieldSupplied(derived)

    values = dict(data)
    sample = values.pop("sample")
    sample_test = values.pop("sample_test")

    with transaction.atomic():
        _lock_sample(sample.pk)

        columns = plan_result_creation(
            requested_status=values.pop("status", None),
            actor=user,
            role=role_for_user(user),
            now=timezone.now(),
        )
        if "findings" in values:
            values["findings"] = prepare_findings(
                _area_of(sample_test), values["findings"], values.get("result_type", "")
            )

        result = Result.objects.create(
            sample=sample,
            sample_test=sample_test,
            **columns,
            **values,
        )

    logger.info("Result %s created for sample %s (%s)", result.pk, sample.pk, result.status)
    return result


# ===============================================================
# Update
# ===============================================================

def _update_result_once(
    *,
    result_id: int,
    patch: Mapping[str, Any],
    user,
    expect_not_validated: bool = False,
) -> Result:
    with transaction.atomic():
        sample_id = Result.objects.values_list("sample_id", flat=True).get(pk=result_id)
        _lock_sample(sample_id)

        result = (
            Result.objects.select_for_update()
            .select_related("sample_test__test")
            .get(pk=result_id)
        )

        if expect_not_validated and normalize_state(result.status) == VALIDATED:
            raise InvalidTransition("Result is already validated")

        changes = plan_result_update(
            current_status=result.status,
            current_validated_by=result.validated_by_id,
            patch=patch,
            actor=user,
            role=role_for_user(user),
            now=timezone.now(),
        )

        result_type = changes.get("result_type", result.result_type)
        if "findings" in changes:
            changes["findings"] = prepare_findings(
                _area_of(result.sample_test), changes["findings"], result_type
            )
        elif "result_type" in changes:
            _check_stored_findings(result, result_type)

        for name, value in changes.items():
            setattr(result, name, value)
        result.save()

    if "status" in changes:
        logger.info("Result %s status -> %s", result.pk, result.status)
    return result


def update_result(*, result_id: int, patch: Mapping[str, Any], user=None) -> Result:
    return run_with_conflict_retry(_update_result_once, result_id=result_id, patch=patch, user=user)


def validate_result(*, result_id: int, user=None) -> Result:
    """
    Privileged transition to `validated`, stamping the validator pair.
    Validating an already validated result is an invalid transition.
    """
    role = role_for_user(user)
    if not is_validator(role):
        raise RoleNotPermitted(f"Role {role} cannot validate results")

    return run_with_conflict_retry(
        _update_result_once,
        result_id=result_id,
        patch={"status": VALIDATED},
        user=user,
        expect_not_validated=True,
    )


# ===============================================================
# Delete
# ===============================================================

def delete_result(*, result_id: int, user=None) -> None:
    with transaction.atomic():
        sample_id = Result.objects.values_list("sample_id", flat=True).get(pk=result_id)
        _lock_sample(sample_id)

        result = Result.objects.select_for_update().get(pk=result_id)
        ensure_can_delete(result.status, role_for_user(user))
        result.delete()

    logger.info("Result %s deleted from sample %s", result_id, sample_id)
