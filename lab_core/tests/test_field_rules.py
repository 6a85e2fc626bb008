# lab_core/tests/test_field_rules.py
from __future__ import annotations

from datetime import date

from lab_core.workflows.field_rules import (
    build_authorized_patch,
    can_edit_field,
    editable_when_validated,
    locked_when_validated,
    missing_required_fields,
    required_fields,
)


def test_notes_and_workflow_fields_stay_editable():
    for name in ("status", "client_notes", "reception_notes", "sampling_observations", "reception_observations"):
        assert can_edit_field(name, has_validated_results=True)


def test_identity_fields_lock_once_validated():
    for name in ("species", "code", "received_date", "client_id", "client", "project", "sla_type"):
        assert can_edit_field(name, has_validated_results=False)
        assert not can_edit_field(name, has_validated_results=True)


def test_unknown_field_fails_closed():
    assert can_edit_field("mystery_column", has_validated_results=False)
    assert not can_edit_field("mystery_column", has_validated_results=True)


def test_tables_are_disjoint():
    assert not set(editable_when_validated()) & set(locked_when_validated())
    assert required_fields() == ["client_id", "code", "received_date", "species"]


def test_mixed_patch_is_blocked_when_validated():
    patch = build_authorized_patch({"species": "Prunus avium", "client_notes": "call first"}, True)

    assert patch.is_blocked
    assert patch.rejected == {"species"}
    assert patch.allowed == {"client_notes": "call first"}


def test_mixed_patch_passes_without_validated_results():
    patch = build_authorized_patch({"species": "Prunus avium", "client_notes": "call first"}, False)

    assert not patch.is_blocked
    assert patch.allowed == {"species": "Prunus avium", "client_notes": "call first"}


def test_patch_accepts_plain_field_names():
    patch = build_authorized_patch({"region", "reception_notes"}, True)

    assert patch.rejected == {"region"}
    assert patch.allowed == {"reception_notes": None}


def test_rejected_names_keep_caller_spelling():
    patch = build_authorized_patch({"client": 3}, True)
    assert patch.rejected == {"client"}


def test_missing_required_fields():
    record = {"client": 1, "code": "S-1", "received_date": date(2024, 1, 1), "species": "  "}
    assert missing_required_fields(record) == ["species"]

    record["species"] = "Vitis vinifera"
    assert missing_required_fields(record) == []

    assert missing_required_fields({}) == required_fields()
