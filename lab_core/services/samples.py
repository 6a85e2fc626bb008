# lab_core/services/samples.py
"""
Sample write service.

Every sample write runs read -> authorize -> patch -> write inside one
transaction holding a row lock on the sample. Result validation takes
the same lock, so an edit never interleaves with a validation.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Iterable, Mapping, Optional, Tuple

from django.db import DatabaseError, transaction

from lab_core.models import (
    AppliedInterpretation,
    Method,
    Report,
    Result,
    Sample,
    SampleFile,
    SampleTest,
    SampleUnit,
    StatusTransition,
    TestCatalog,
    UnitResult,
)
from lab_core.permissions import role_for_user
from lab_core.selectors import has_validated_results
from lab_core.workflows import (
    PURGE_ROLES,
    SAMPLE_INITIAL_STATE,
    is_editor,
    normalize_role,
    normalize_state,
)
from lab_core.workflows.errors import (
    ConcurrentEditConflict,
    DerivedFieldSupplied,
    EditLocked,
    RequiredFieldsMissing,
    RoleNotPermitted,
    SampleTestConflict,
)
from lab_core.workflows.field_rules import (
    build_authorized_patch,
    canonical_field,
    missing_required_fields,
    required_fields,
)
from lab_core.workflows.transition_service import apply_status_change

logger = logging.getLogger(__name__)

RETRYABLE_SQLSTATES = {"40001", "40P01"}

DERIVED_SAMPLE_FIELDS = {"due_date"}


# ===============================================================
# Helpers
# ===============================================================

def _sqlstate(exc: BaseException) -> Optional[str]:
    for candidate in (exc, exc.__cause__, exc.__context__):
        if candidate is None:
            continue
        code = getattr(candidate, "sqlstate", None) or getattr(candidate, "pgcode", None)
        if code:
            return str(code)
    return None


def run_with_conflict_retry(fn: Callable[..., Any], *args, **kwargs) -> Any:
    """
    Run `fn` once more if the database aborts it with a serialization
    failure or deadlock. `fn` must open its own transaction so the retry
    re-reads and re-authorizes from scratch. A second conflict raises
    ConcurrentEditConflict.
    """
    try:
        return fn(*args, **kwargs)
    except DatabaseError as exc:
        if _sqlstate(exc) not in RETRYABLE_SQLSTATES:
            raise
        logger.warning("Retrying %s after transient conflict: %s", fn.__name__, exc)

    try:
        return fn(*args, **kwargs)
    except DatabaseError as exc:
        if _sqlstate(exc) not in RETRYABLE_SQLSTATES:
            raise
        raise ConcurrentEditConflict() from exc


def _reject_derived(changes: Mapping[str, Any]) -> None:
    derived = DERIVED_SAMPLE_FIELDS.intersection(changes)
    if derived:
        raise DerivedFieldSupplied(
            derived, "due_date is computed from received_date and sla_type"
        )


def _require_editor(user) -> str:
    role = role_for_user(user)
    if not is_editor(role):
        raise RoleNotPermitted(f"Role {role} cannot modify samples")
    return role


def _record_of(sample: Sample) -> Dict[str, Any]:
    return {name: getattr(sample, name) for name in ("client_id", "code", "received_date", "species")}


def _current_value(sample: Sample, name: str) -> Any:
    return getattr(sample, name, None)


def _changed_fields(sample: Sample, changes: Mapping[str, Any]) -> Dict[str, Any]:
    """Only fields whose value differs from the stored row count as edits."""
    out = {}
    for name, value in changes.items():
        if name == "status":
            if normalize_state(value) != normalize_state(sample.status):
                out[name] = value
            continue
        if _current_value(sample, name) != value:
            out[name] = value
    return out


# ===============================================================
# Create
# ===============================================================

def _requested_test(item: Any) -> Tuple[TestCatalog, Optional[Method]]:
    # Catalog entries alone, or {"test": ..., "method": ...} pairs
    if isinstance(item, Mapping):
        test, method = item["test"], item.get("method")
    else:
        test, method = item, None
    return test, method or test.default_method


def create_sample(*, data: Mapping[str, Any], tests: Iterable = (), user=None) -> Sample:
    """
    Create a sample with its requested analyses.

    `data` holds model-level values (client/project instances). The due
    date and SLA classification are derived on save. Each requested test
    uses the chosen method, or the catalog default when none is given.
    """
    _require_editor(user)
    _reject_derived(data)

    values = dict(data)
    requested_status = values.pop("status", None)
    reason = values.pop("status_reason", "")

    missing = missing_required_fields({canonical_field(k): v for k, v in values.items()})
    if missing:
        raise RequiredFieldsMissing(missing)

    with transaction.atomic():
        sample = Sample(**values)
        sample.status = SAMPLE_INITIAL_STATE
        sample.save()

        seen = set()
        for item in tests:
            test, method = _requested_test(item)
            if test.pk in seen:
                raise SampleTestConflict(f"Test {test.code} is requested more than once")
            seen.add(test.pk)
            SampleTest.objects.create(sample=sample, test=test, method=method)

        if requested_status and normalize_state(requested_status) != SAMPLE_INITIAL_STATE:
            apply_status_change(
                sample_id=sample.pk,
                to_status=requested_status,
                by_user=user,
                reason=reason or "Initial status",
            )
            sample.refresh_from_db()

    logger.info("Sample %s created (code=%s)", sample.pk, sample.code)
    return sample


# ===============================================================
# Update
# ===============================================================

def _update_sample_once(*, sample_id: int, changes: Mapping[str, Any], user, replace: bool) -> Sample:
    with transaction.atomic():
        sample = Sample.objects.select_for_update().get(pk=sample_id)

        values = dict(changes)
        reason = values.pop("status_reason", "")
        edits = _changed_fields(sample, values)

        validated = has_validated_results(sample)
        patch = build_authorized_patch(edits, validated)
        if patch.is_blocked:
            raise EditLocked(patch.rejected)

        if not validated:
            missing = []
            if replace:
                supplied = {canonical_field(k) for k in values}
                missing = [f for f in required_fields() if f not in supplied]
            merged = _record_of(sample)
            merged.update({canonical_field(k): v for k, v in patch.allowed.items()})
            missing += [f for f in missing_required_fields(merged) if f not in missing]
            if missing:
                raise RequiredFieldsMissing(missing)

        new_status = patch.allowed.pop("status", None)

        if patch.allowed:
            for name, value in patch.allowed.items():
                setattr(sample, name, value)
            # save() recomputes due_date when received_date/sla_type moved
            sample.save()

        if new_status is not None:
            apply_status_change(
                sample_id=sample.pk,
                to_status=new_status,
                by_user=user,
                reason=reason,
            )

        sample.refresh_from_db()
        return sample


def update_sample(*, sample_id: int, changes: Mapping[str, Any], user=None, replace: bool = False) -> Sample:
    """
    Apply an edit to a sample.

    Raises:
        EditLocked: locked fields touched while validated results exist;
            nothing is written
        RequiredFieldsMissing: required fields absent/blank
        DerivedFieldSupplied: due_date supplied by the client
    """
    _require_editor(user)
    _reject_derived(changes)

    return run_with_conflict_retry(
        _update_sample_once,
        sample_id=sample_id,
        changes=changes,
        user=user,
        replace=replace,
    )


def change_sample_status(*, sample_id: int, to_status: str, user=None, reason: str = "") -> dict:
    _require_editor(user)
    return run_with_conflict_retry(
        apply_status_change,
        sample_id=sample_id,
        to_status=to_status,
        by_user=user,
        reason=reason,
    )


# ===============================================================
# Requested tests
# ===============================================================

def add_sample_test(*, sample_id: int, test: TestCatalog, method: Optional[Method] = None, user=None) -> SampleTest:
    _require_editor(user)

    with transaction.atomic():
        sample = Sample.objects.select_for_update().get(pk=sample_id)
        if SampleTest.objects.filter(sample=sample, test=test).exists():
            raise SampleTestConflict(f"Test {test.code} is already requested for this sample")
        sample_test = SampleTest.objects.create(
            sample=sample, test=test, method=method or test.default_method
        )

    logger.info("Sample %s: test %s added (%s)", sample_id, test.code, sample_test.method_id)
    return sample_test


def remove_sample_test(*, sample_id: int, sample_test_id: int, user=None) -> None:
    """
    Drop a requested test. Tests that already carry results stay.
    """
    _require_editor(user)

    with transaction.atomic():
        Sample.objects.select_for_update().get(pk=sample_id)
        sample_test = SampleTest.objects.get(pk=sample_test_id, sample_id=sample_id)
        if sample_test.results.exists():
            raise SampleTestConflict("Requested test has results and cannot be removed")
        sample_test.delete()

    logger.info("Sample %s: requested test %s removed", sample_id, sample_test_id)


# ===============================================================
# Purge
# ===============================================================

PURGE_STEPS = (
    ("unit_results", lambda pk: UnitResult.objects.filter(unit__sample_id=pk)),
    ("sample_units", lambda pk: SampleUnit.objects.filter(sample_id=pk)),
    ("results", lambda pk: Result.objects.filter(sample_id=pk)),
    ("sample_tests", lambda pk: SampleTest.objects.filter(sample_id=pk)),
    ("status_transitions", lambda pk: StatusTransition.objects.filter(sample_id=pk)),
    ("applied_interpretations", lambda pk: AppliedInterpretation.objects.filter(sample_id=pk)),
    ("sample_files", lambda pk: SampleFile.objects.filter(sample_id=pk)),
    ("reports", lambda pk: Report.objects.filter(sample_id=pk)),
    ("sample", lambda pk: Sample.objects.filter(pk=pk)),
)


def purge_sample(*, sample_id: int, user=None) -> Dict[str, int]:
    """
    Delete a sample and every dependent row, children first, in one
    transaction. The first failing step rolls everything back.

    Returns the number of rows removed per step.
    """
    role = normalize_role(role_for_user(user))
    if role not in PURGE_ROLES:
        raise RoleNotPermitted(f"Role {role} cannot delete samples")

    removed: Dict[str, int] = {}
    with transaction.atomic():
        Sample.objects.select_for_update().get(pk=sample_id)
        for name, queryset_for in PURGE_STEPS:
            count, _ = queryset_for(sample_id).delete()
            removed[name] = count

    logger.info("Sample %s purged: %s", sample_id, removed)
    return removed
