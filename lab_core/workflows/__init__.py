# lab_core/workflows/__init__.py
from __future__ import annotations

from typing import Any, Dict, List, Optional, Set

from lab_core.workflows.errors import InvalidTransition


# ===============================================================
# Canonical workflow definitions
# ===============================================================
# The sample graph is deliberately open: any known status may follow
# any other. The audit append in transition_service is the invariant.

SAMPLE_STATES: List[str] = [
    "received",
    "processing",
    "microscopy",
    "isolation",
    "identification",
    "molecular_analysis",
    "validation",
    "completed",
]

SAMPLE_INITIAL_STATE = "received"
SAMPLE_TERMINAL_STATES: Set[str] = {"completed"}

SAMPLE_TRANSITIONS: Dict[str, Set[str]] = {
    state: {s for s in SAMPLE_STATES if s != state} for state in SAMPLE_STATES
}


# ===============================================================
# Role normalization
# ===============================================================

ADMIN = "admin"
VALIDATOR = "validador"
COMMON = "comun"
CONSUMER = "consumidor"

ROLES: List[str] = [ADMIN, VALIDATOR, COMMON, CONSUMER]

ROLE_ALIASES: Dict[str, str] = {
    "ADMIN": ADMIN,
    "SUPERUSER": ADMIN,
    "ADMINISTRADOR": ADMIN,
    "VALIDADOR": VALIDATOR,
    "VALIDATOR": VALIDATOR,
    "COMUN": COMMON,
    "COMÚN": COMMON,
    "COMMON": COMMON,
    "ANALISTA": COMMON,
    "CONSUMIDOR": CONSUMER,
    "CONSUMER": CONSUMER,
    "VIEWER": CONSUMER,
}

VALIDATOR_ROLES: Set[str] = {ADMIN, VALIDATOR}
EDITOR_ROLES: Set[str] = {ADMIN, VALIDATOR, COMMON}
PURGE_ROLES: Set[str] = {ADMIN}


def normalize_state(value: Optional[str]) -> str:
    return str(value or "").strip().lower()


def normalize_role(value: Optional[str]) -> str:
    raw = str(value or "").strip().upper().replace(" ", "_")
    return ROLE_ALIASES.get(raw, CONSUMER)


def is_validator(role: Optional[str]) -> bool:
    return normalize_role(role) in VALIDATOR_ROLES


def is_editor(role: Optional[str]) -> bool:
    return normalize_role(role) in EDITOR_ROLES


# ===============================================================
# Public workflow API
# ===============================================================

def validate_sample_transition(current: Optional[str], target: Optional[str]) -> None:
    """
    Raises InvalidTransition if either state is outside the sample universe.

    Same-state writes are accepted; they are no-ops for the audit trail.
    """
    cur = normalize_state(current)
    tgt = normalize_state(target)

    if cur not in SAMPLE_TRANSITIONS:
        raise InvalidTransition(f"Unknown sample state: {cur or '<empty>'}")
    if tgt not in SAMPLE_TRANSITIONS:
        raise InvalidTransition(f"Unknown sample state: {tgt or '<empty>'}")

    if cur == tgt:
        return

    if tgt not in SAMPLE_TRANSITIONS[cur]:
        raise InvalidTransition(f"Invalid sample transition: {cur} -> {tgt}")


def allowed_next_states(current: Optional[str]) -> List[str]:
    cur = normalize_state(current)
    nxt = SAMPLE_TRANSITIONS.get(cur, set())
    return [s for s in SAMPLE_STATES if s in nxt]


def workflow_definition(kind: str = "sample") -> Dict[str, Any]:
    """
    Stable JSON-serializable definition for UI.
    """
    k = normalize_state(kind)

    if k == "sample":
        return {
            "kind": "sample",
            "states": list(SAMPLE_STATES),
            "initial_state": SAMPLE_INITIAL_STATE,
            "terminal_states": sorted(SAMPLE_TERMINAL_STATES),
            "transitions": {s: allowed_next_states(s) for s in SAMPLE_STATES},
        }

    if k == "result":
        from lab_core.workflows.result_lifecycle import result_workflow_definition

        return result_workflow_definition()

    raise ValueError(f"Unsupported workflow kind: {kind}")


__all__ = [
    "SAMPLE_STATES",
    "SAMPLE_TRANSITIONS",
    "SAMPLE_INITIAL_STATE",
    "ROLES",
    "VALIDATOR_ROLES",
    "EDITOR_ROLES",
    "PURGE_ROLES",
    "normalize_state",
    "normalize_role",
    "is_validator",
    "is_editor",
    "validate_sample_transition",
    "allowed_next_states",
    "workflow_definition",
]
