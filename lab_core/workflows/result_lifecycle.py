# lab_core/workflows/result_lifecycle.py
from __future__ import annotations

"""
Result validation lifecycle.

Defines:
- Result status universe and transitions
- Role requirements per transition
- Planning of an update: which columns change, including the derived
  validated_by / validated_at pair

No persistence here; lab_core.services.results applies the plan.
"""

from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set

from lab_core.workflows import (
    EDITOR_ROLES,
    VALIDATOR_ROLES,
    normalize_role,
    normalize_state,
)
from lab_core.workflows.errors import (
    DerivedFieldSupplied,
    InvalidTransition,
    ResultLocked,
    RoleNotPermitted,
)


PENDING = "pending"
COMPLETED = "completed"
VALIDATED = "validated"

RESULT_STATES: List[str] = [PENDING, COMPLETED, VALIDATED]

RESULT_TRANSITION_ROLES: Dict[str, Dict[str, Set[str]]] = {
    PENDING: {
        COMPLETED: EDITOR_ROLES,
        VALIDATED: VALIDATOR_ROLES,
    },
    COMPLETED: {
        PENDING: EDITOR_ROLES,
        VALIDATED: VALIDATOR_ROLES,
    },
    VALIDATED: {
        COMPLETED: VALIDATOR_ROLES,
    },
}

# Columns a client may write on a result. validated_by is accepted only
# under the rules in plan_result_update().
RESULT_WRITABLE_FIELDS: Set[str] = {
    "methodology",
    "findings",
    "conclusion",
    "diagnosis",
    "pathogen_identified",
    "pathogen_type",
    "severity",
    "confidence",
    "result_type",
    "recommendations",
    "status",
    "validated_by",
}

DERIVED_FIELDS: Set[str] = {"validated_at", "performed_at", "performed_by"}


# ===============================================================
# Transitions
# ===============================================================

def allowed_result_transitions(current: Optional[str], role: Optional[str]) -> List[str]:
    cur = normalize_state(current)
    r = normalize_role(role)
    targets = RESULT_TRANSITION_ROLES.get(cur, {})
    return [t for t in RESULT_STATES if t in targets and r in targets[t]]


def validate_result_transition(current: Optional[str], target: Optional[str], role: Optional[str]) -> None:
    """
    Raises InvalidTransition for an unknown or undefined move and
    RoleNotPermitted when the role may not perform it.
    """
    cur = normalize_state(current)
    tgt = normalize_state(target)

    if cur not in RESULT_TRANSITION_ROLES:
        raise InvalidTransition(f"Unknown result status: {cur or '<empty>'}")
    if tgt not in RESULT_TRANSITION_ROLES:
        raise InvalidTransition(f"Unknown result status: {tgt or '<empty>'}")

    if cur == tgt:
        return

    roles = RESULT_TRANSITION_ROLES[cur].get(tgt)
    if roles is None:
        raise InvalidTransition(f"Invalid result transition: {cur} -> {tgt}")

    r = normalize_role(role)
    if r not in roles:
        raise RoleNotPermitted(
            f"Role {r} cannot move a result from {cur} to {tgt}. "
            f"Required: {', '.join(sorted(roles))}"
        )


def result_workflow_definition() -> Dict[str, Any]:
    return {
        "kind": "result",
        "states": list(RESULT_STATES),
        "initial_state": PENDING,
        "transitions": {
            cur: {tgt: sorted(roles) for tgt, roles in targets.items()}
            for cur, targets in RESULT_TRANSITION_ROLES.items()
        },
    }


# ===============================================================
# Update planning
# ===============================================================

def _pk(value: Any) -> Any:
    # Users arrive as instances or raw primary keys
    return getattr(value, "pk", value)


def ensure_can_modify(status: Optional[str], role: Optional[str], fields: Iterable[str] = ()) -> None:
    """
    Editors may touch non-validated results; validated results belong to
    validators only.
    """
    r = normalize_role(role)
    if r not in EDITOR_ROLES:
        raise RoleNotPermitted(f"Role {r} cannot modify results")
    if normalize_state(status) == VALIDATED and r not in VALIDATOR_ROLES:
        raise ResultLocked(fields)


def plan_result_update(
    *,
    current_status: Optional[str],
    current_validated_by: Any,
    patch: Mapping[str, Any],
    actor: Any,
    role: Optional[str],
    now: datetime,
) -> Dict[str, Any]:
    """
    Return the column changes implied by `patch`.

    Invariants kept here:
    - validated_at is never taken from the client
    - the first validation stamps validated_by=actor and validated_at=now
    - clearing validated_by clears validated_at and demotes a validated
      result back to completed
    - leaving the validated state clears the validator pair
    - resending the current validator does not restamp validated_at
    """
    derived = DERIVED_FIELDS.intersection(patch)
    if derived:
        raise DerivedFieldSupplied(derived)

    cur = normalize_state(current_status)
    ensure_can_modify(cur, role, patch.keys())

    changes: Dict[str, Any] = {
        k: v for k, v in patch.items() if k not in ("status", "validated_by")
    }

    target = normalize_state(patch["status"]) if "status" in patch else cur
    if target != cur:
        validate_result_transition(cur, target, role)
        changes["status"] = target

    r = normalize_role(role)

    if "validated_by" in patch:
        new_validator = patch["validated_by"]

        if r not in VALIDATOR_ROLES:
            raise RoleNotPermitted(f"Role {r} cannot assign result validators")

        if new_validator is None:
            changes["validated_by"] = None
            changes["validated_at"] = None
            if target == VALIDATED:
                changes["status"] = COMPLETED
            return changes

        if target != VALIDATED or current_validated_by is None:
            raise DerivedFieldSupplied(
                ["validated_by"],
                "validated_by is set from the validating user on first validation",
            )

        # Resending the current validator leaves the pair untouched
        if _pk(new_validator) == _pk(current_validated_by):
            return changes

        changes["validated_by"] = new_validator
        changes["validated_at"] = now
        return changes

    if target == VALIDATED and cur != VALIDATED and current_validated_by is None:
        changes["validated_by"] = actor
        changes["validated_at"] = now

    if cur == VALIDATED and target != VALIDATED:
        changes["validated_by"] = None
        changes["validated_at"] = None

    return changes


def plan_result_creation(
    *,
    requested_status: Optional[str],
    actor: Any,
    role: Optional[str],
    now: datetime,
) -> Dict[str, Any]:
    """
    Status columns for a new result. Results start pending; a validator
    may record one directly as completed or validated.
    """
    r = normalize_role(role)
    if r not in EDITOR_ROLES:
        raise RoleNotPermitted(f"Role {r} cannot create results")

    columns: Dict[str, Any] = {
        "status": PENDING,
        "performed_by": actor,
        "performed_at": now,
        "validated_by": None,
        "validated_at": None,
    }

    target = normalize_state(requested_status) or PENDING
    if target != PENDING:
        validate_result_transition(PENDING, target, r)
        columns["status"] = target

    if target == VALIDATED:
        columns["validated_by"] = actor
        columns["validated_at"] = now

    return columns


def ensure_can_delete(status: Optional[str], role: Optional[str]) -> None:
    r = normalize_role(role)
    if r not in EDITOR_ROLES:
        raise RoleNotPermitted(f"Role {r} cannot delete results")
    if normalize_state(status) == VALIDATED and r not in VALIDATOR_ROLES:
        raise ResultLocked(message="Cannot delete validated results")
