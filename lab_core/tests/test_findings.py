# lab_core/tests/test_findings.py
from __future__ import annotations

import json

import pytest

from lab_core.findings import (
    NEMATODE_NEGATIVE_LABEL,
    AnalysisArea,
    Lookups,
    classify_area,
    encode_findings,
    render_findings,
    validate_findings,
)
from lab_core.workflows.errors import FindingsInvalid

LOOKUPS = Lookups(
    methods={"1": "ELISA DAS", "2": "PCR convencional"},
    analytes={
        "virus": {"7": "Grapevine leafroll-associated virus 3"},
        "bacteria": {"8": "Agrobacterium tumefaciens"},
        "fungus": {"9": "Botrytis cinerea"},
        "nematode": {"10": "Xiphinema index"},
    },
)


# ---------------------------------------------------------------
# Area classification
# ---------------------------------------------------------------
@pytest.mark.parametrize(
    "raw, expected",
    [
        ("Virología", AnalysisArea.VIROLOGY),
        ("NEMATOLOGÍA", AnalysisArea.NEMATOLOGY),
        ("Bacteriología vegetal", AnalysisArea.BACTERIOLOGY),
        ("fitopatologia", AnalysisArea.PHYTOPATHOLOGY),
        ("Detección Precoz", AnalysisArea.EARLY_DETECTION),
        ("deteccion_precoz", AnalysisArea.EARLY_DETECTION),
        ("Química de suelos", AnalysisArea.UNKNOWN),
        ("", AnalysisArea.UNKNOWN),
        (None, AnalysisArea.UNKNOWN),
    ],
)
def test_classify_area(raw, expected):
    assert classify_area(raw) is expected


# ---------------------------------------------------------------
# Encoding, one case per variant
# ---------------------------------------------------------------
def _round_trip(area, draft):
    encoded = encode_findings(area, draft, LOOKUPS)
    validate_findings(encoded)
    table = render_findings(encoded)
    assert table["type"] == encoded["type"]
    collection = "nematodes" if encoded["type"].startswith("nematologia") else "tests"
    assert table["rows"] == encoded[collection]
    return encoded, table


def test_nematology_negative_uses_default_label():
    encoded, table = _round_trip(
        "Nematología",
        {"result_type": "negative", "nematodes": [{"name": "", "quantity": " 120 "}]},
    )
    assert encoded == {
        "type": "nematologia_negative",
        "nematodes": [{"name": NEMATODE_NEGATIVE_LABEL, "quantity": "120"}],
    }
    assert table["columns"] == ["name", "quantity"]


def test_nematology_negative_requires_quantity():
    assert encode_findings("Nematología", {"result_type": "negative", "nematodes": [{"quantity": ""}]}) is None


def test_nematology_positive_drops_nameless_rows():
    encoded, _ = _round_trip(
        "Nematología",
        {
            "result_type": "positive",
            "nematodes": [
                {"name": "10", "quantity": "45"},
                {"name": "", "quantity": "3"},
                {"name": "Pratylenchus spp.", "quantity": "12"},
            ],
        },
    )
    assert encoded["nematodes"] == [
        {"name": "Xiphinema index", "quantity": "45"},
        {"name": "Pratylenchus spp.", "quantity": "12"},
    ]


def test_virology_resolves_ids_and_normalizes_result():
    encoded, table = _round_trip(
        "Virología",
        {
            "tests": [
                {"identification": "P1", "method": 1, "virus": 7, "result": "Positivo"},
                {"identification": "P2", "method": "", "virus": "7", "result": "negative"},
                {"identification": "P3", "method": "99", "virus": "GFLV", "result": "negative"},
            ]
        },
    )
    assert encoded["tests"] == [
        {
            "identification": "P1",
            "method": "ELISA DAS",
            "virus": "Grapevine leafroll-associated virus 3",
            "result": "positive",
        },
        {"identification": "P3", "method": "99", "virus": "GFLV", "result": "negative"},
    ]
    assert table["columns"] == ["identification", "method", "virus", "result"]


def test_virology_rejects_non_binary_result():
    with pytest.raises(FindingsInvalid):
        encode_findings("Virología", {"tests": [{"method": "1", "virus": "7", "result": "maybe"}]}, LOOKUPS)


def test_bacteriology_falls_back_to_any_category():
    encoded, _ = _round_trip(
        "Bacteriología",
        {"tests": [{"identification": "B1", "method": "2", "microorganism": "9", "result": "Detectado"}]},
    )
    assert encoded["tests"][0]["method"] == "PCR convencional"
    assert encoded["tests"][0]["microorganism"] == "Botrytis cinerea"
    assert encoded["tests"][0]["result"] == "Detectado"


def test_phytopathology_fills_missing_dilutions():
    encoded, _ = _round_trip(
        "Fitopatología",
        {
            "tests": [
                {"identification": "F1", "microorganism": "9", "dilutions": {"10-1": "35"}},
                {"identification": "F2", "microorganism": "9", "dilutions": {}},
            ]
        },
    )
    assert encoded["tests"] == [
        {
            "identification": "F1",
            "microorganism": "Botrytis cinerea",
            "dilutions": {"10-1": "35", "10-2": "", "10-3": ""},
        }
    ]


def test_early_detection_requires_all_identity_columns():
    encoded, _ = _round_trip(
        "Detección precoz",
        {
            "tests": [
                {
                    "sample_code": "M-1",
                    "identification": "Hilera 4",
                    "variety": "Carménère",
                    "units_evaluated": 50,
                    "severity_scale": {"0": 40, "1": 8, "2": 2},
                },
                {"sample_code": "M-2", "identification": "Hilera 5", "variety": "", "units_evaluated": "50"},
            ]
        },
    )
    assert encoded["tests"] == [
        {
            "sample_code": "M-1",
            "identification": "Hilera 4",
            "variety": "Carménère",
            "units_evaluated": "50",
            "severity_scale": {"0": "40", "1": "8", "2": "2", "3": ""},
        }
    ]


def test_no_qualifying_rows_means_incomplete():
    assert encode_findings("Virología", {"tests": [{"identification": "P1"}]}, LOOKUPS) is None
    assert encode_findings("Fitopatología", {"tests": []}, LOOKUPS) is None
    assert encode_findings("Virología", None, LOOKUPS) is None


def test_stored_payload_re_encodes_unchanged():
    draft = {"result_type": "negative", "nematodes": [{"name": "", "quantity": "5"}]}
    encoded = encode_findings("Nematología", draft, LOOKUPS)
    assert encode_findings("Nematología", encoded, LOOKUPS) == encoded


def test_json_text_draft_is_parsed():
    draft = {"tests": [{"identification": "P1", "method": "1", "virus": "7", "result": "negative"}]}
    encoded = encode_findings("Virología", json.dumps(draft), LOOKUPS)
    assert encoded["type"] == "virologia"


def test_plain_text_for_known_area_is_rejected():
    with pytest.raises(FindingsInvalid):
        encode_findings("Virología", "all negative", LOOKUPS)


def test_tag_from_another_area_is_rejected():
    draft = {"type": "bacteriologia", "tests": []}
    with pytest.raises(FindingsInvalid):
        encode_findings("Virología", draft, LOOKUPS)


def test_unknown_area_keeps_free_form_payload():
    assert encode_findings("Química de suelos", "pH 6.5") == {"text": "pH 6.5"}
    assert encode_findings("Química de suelos", {"ph": 6.5}) == {"ph": 6.5}
    assert encode_findings("Química de suelos", "   ") is None


# ---------------------------------------------------------------
# Validation / rendering
# ---------------------------------------------------------------
def test_validate_rejects_extra_keys():
    payload = {
        "type": "virologia",
        "tests": [{"identification": "", "method": "m", "virus": "v", "result": "positive", "notes": "x"}],
        "comment": "extra",
    }
    with pytest.raises(FindingsInvalid) as exc:
        validate_findings(payload)

    problems = " ".join(exc.value.problems)
    assert "comment" in problems
    assert "notes" in problems


def test_validate_negative_allows_exactly_one_entry():
    payload = {
        "type": "nematologia_negative",
        "nematodes": [{"name": "a", "quantity": "1"}, {"name": "b", "quantity": "2"}],
    }
    with pytest.raises(FindingsInvalid):
        validate_findings(payload)


def test_validate_checks_nested_keys():
    payload = {
        "type": "fitopatologia",
        "tests": [{"identification": "", "microorganism": "m", "dilutions": {"10-1": "1"}}],
    }
    with pytest.raises(FindingsInvalid):
        validate_findings(payload)


def test_untagged_and_unknown_tags_are_opaque():
    validate_findings({"text": "free"})
    validate_findings({"type": "micologia", "anything": [1, 2]})
    validate_findings("plain text")
    validate_findings(None)


def test_render_fallbacks():
    assert render_findings(None) == {"type": "empty", "columns": [], "rows": []}
    assert render_findings({"type": "micologia", "x": 1}) == {
        "type": "raw",
        "raw": json.dumps({"type": "micologia", "x": 1}),
    }
    assert render_findings("texto libre") == {"type": "raw", "raw": "texto libre"}
