# lab_core/workflows/field_rules.py
from __future__ import annotations

"""
Field-level edit rules for Sample records.

A single capability table drives both the "locked once results are
validated" check and the required-field contract.

PURE LOGIC + DATA. No Django imports.
"""

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, NamedTuple, Set, Union


@dataclass(frozen=True)
class FieldRule:
    locked_when_validated: bool = True
    required: bool = False


# ===============================================================
# SAMPLE FIELD CAPABILITIES
# ===============================================================
# Fields absent from this table are treated as locked once the sample
# has a validated result.
# ===============================================================

SAMPLE_FIELD_RULES: Dict[str, FieldRule] = {
    # Workflow and free-text annotations stay editable
    "status": FieldRule(locked_when_validated=False),
    "sla_status": FieldRule(locked_when_validated=False),
    "due_date": FieldRule(locked_when_validated=False),
    "client_notes": FieldRule(locked_when_validated=False),
    "reception_notes": FieldRule(locked_when_validated=False),
    "sampling_observations": FieldRule(locked_when_validated=False),
    "reception_observations": FieldRule(locked_when_validated=False),

    # Identity of the sample
    "client_id": FieldRule(required=True),
    "code": FieldRule(required=True),
    "received_date": FieldRule(required=True),
    "species": FieldRule(required=True),

    # Context that results were interpreted against
    "variety": FieldRule(),
    "rootstock": FieldRule(),
    "planting_year": FieldRule(),
    "previous_crop": FieldRule(),
    "next_crop": FieldRule(),
    "fallow": FieldRule(),
    "project_id": FieldRule(),
    "sla_type": FieldRule(),
    "region": FieldRule(),
    "locality": FieldRule(),
    "taken_by": FieldRule(),
    "sampling_method": FieldRule(),
    "suspected_pathogen": FieldRule(),
    "delivery_method": FieldRule(),
}

_LOCKED_DEFAULT = FieldRule()

# Serializer field names that map onto FK columns
FIELD_ALIASES: Dict[str, str] = {
    "client": "client_id",
    "project": "project_id",
}


def canonical_field(name: str) -> str:
    return FIELD_ALIASES.get(name, name)


def rule_for(field_name: str) -> FieldRule:
    return SAMPLE_FIELD_RULES.get(canonical_field(field_name), _LOCKED_DEFAULT)


def editable_when_validated() -> List[str]:
    return sorted(k for k, r in SAMPLE_FIELD_RULES.items() if not r.locked_when_validated)


def locked_when_validated() -> List[str]:
    return sorted(k for k, r in SAMPLE_FIELD_RULES.items() if r.locked_when_validated)


def required_fields() -> List[str]:
    return [k for k, r in SAMPLE_FIELD_RULES.items() if r.required]


# ===============================================================
# PUBLIC API
# ===============================================================

def can_edit_field(field_name: str, has_validated_results: bool) -> bool:
    """
    Return True if `field_name` may be changed on a sample.

    Without validated results every field is editable. Once any result
    is validated only the allow-listed fields remain editable.
    """
    if not has_validated_results:
        return True
    return not rule_for(field_name).locked_when_validated


class AuthorizedPatch(NamedTuple):
    allowed: Dict[str, Any]
    rejected: Set[str]

    @property
    def is_blocked(self) -> bool:
        return bool(self.rejected)


def build_authorized_patch(
    proposed: Union[Mapping[str, Any], Iterable[str]],
    has_validated_results: bool,
) -> AuthorizedPatch:
    """
    Split a proposed change set into editable and blocked parts.

    `proposed` may be a mapping (values are carried into `allowed`) or a
    plain iterable of field names (values are None). Callers must reject
    the whole update when `rejected` is non-empty; nothing here drops
    fields silently.
    """
    if isinstance(proposed, Mapping):
        items = list(proposed.items())
    else:
        items = [(name, None) for name in proposed]

    allowed: Dict[str, Any] = {}
    rejected: Set[str] = set()

    for name, value in items:
        if can_edit_field(name, has_validated_results):
            allowed[name] = value
        else:
            rejected.add(name)

    return AuthorizedPatch(allowed=allowed, rejected=rejected)


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str) and not value.strip():
        return True
    return False


def missing_required_fields(record: Mapping[str, Any]) -> List[str]:
    """
    Return required field names that are absent or blank in `record`.

    `record` uses canonical names (client_id, project_id, ...); alias
    keys are accepted too.
    """
    normalized = {canonical_field(k): v for k, v in record.items()}
    return [name for name in required_fields() if _is_blank(normalized.get(name))]
