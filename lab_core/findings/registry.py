# lab_core/findings/registry.py
from __future__ import annotations

"""
Findings schema registry.

A result's `findings` column carries one of a closed set of tagged
payloads, discriminated by `type`. This module owns:

- the schema of every tag (row collection, row keys, nested keys,
  enumerations)
- encoding a UI draft into a tagged payload, resolving method/analyte
  IDs to display names
- strict validation of tagged payloads
- rendering any stored payload into a table, with an opaque fallback

PURE LOGIC. Database lookups are passed in as a Lookups object.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple

from lab_core.findings.areas import AnalysisArea, classify_area
from lab_core.workflows.errors import FindingsInvalid


NEMATODE_NEGATIVE_LABEL = "Nematodos no fitoparásitos (benéficos)"

DILUTION_KEYS: Tuple[str, ...] = ("10-1", "10-2", "10-3")
SEVERITY_KEYS: Tuple[str, ...] = ("0", "1", "2", "3")
BINARY_RESULTS: Tuple[str, ...] = ("positive", "negative")

_RESULT_ALIASES = {
    "positivo": "positive",
    "negativo": "negative",
    "+": "positive",
    "-": "negative",
}


# ===============================================================
# Lookups
# ===============================================================

def _key(value: Any) -> str:
    return str(value).strip()


@dataclass(frozen=True)
class Lookups:
    """
    Display names for method and analyte identifiers.

    methods:   {method_id: name}
    analytes:  {category: {analyte_id: display_name}}
    """

    methods: Mapping[str, str] = field(default_factory=dict)
    analytes: Mapping[str, Mapping[str, str]] = field(default_factory=dict)

    def method_name(self, value: Any) -> str:
        raw = _text(value)
        return self.methods.get(raw, raw) if raw else raw

    def analyte_name(self, value: Any, category: str) -> str:
        raw = _text(value)
        if not raw:
            return raw

        preferred = self.analytes.get(category, {})
        if raw in preferred:
            return preferred[raw]

        for table in self.analytes.values():
            if raw in table:
                return table[raw]

        return raw


EMPTY_LOOKUPS = Lookups()


# ===============================================================
# Schemas
# ===============================================================

@dataclass(frozen=True)
class FindingsSchema:
    type: str
    area: AnalysisArea
    collection: str
    columns: Tuple[str, ...]
    nested: Mapping[str, Tuple[str, ...]] = field(default_factory=dict)
    choices: Mapping[str, Tuple[str, ...]] = field(default_factory=dict)
    min_rows: int = 1
    max_rows: Optional[int] = None


NEMATOLOGY_NEGATIVE = "nematologia_negative"
NEMATOLOGY_POSITIVE = "nematologia_positive"
VIROLOGY = "virologia"
BACTERIOLOGY = "bacteriologia"
PHYTOPATHOLOGY = "fitopatologia"
EARLY_DETECTION = "deteccion_precoz"

SCHEMAS: Dict[str, FindingsSchema] = {
    NEMATOLOGY_NEGATIVE: FindingsSchema(
        type=NEMATOLOGY_NEGATIVE,
        area=AnalysisArea.NEMATOLOGY,
        collection="nematodes",
        columns=("name", "quantity"),
        min_rows=1,
        max_rows=1,
    ),
    NEMATOLOGY_POSITIVE: FindingsSchema(
        type=NEMATOLOGY_POSITIVE,
        area=AnalysisArea.NEMATOLOGY,
        collection="nematodes",
        columns=("name", "quantity"),
    ),
    VIROLOGY: FindingsSchema(
        type=VIROLOGY,
        area=AnalysisArea.VIROLOGY,
        collection="tests",
        columns=("identification", "method", "virus", "result"),
        choices={"result": BINARY_RESULTS},
    ),
    BACTERIOLOGY: FindingsSchema(
        type=BACTERIOLOGY,
        area=AnalysisArea.BACTERIOLOGY,
        collection="tests",
        columns=("identification", "method", "microorganism", "result"),
    ),
    PHYTOPATHOLOGY: FindingsSchema(
        type=PHYTOPATHOLOGY,
        area=AnalysisArea.PHYTOPATHOLOGY,
        collection="tests",
        columns=("identification", "microorganism", "dilutions"),
        nested={"dilutions": DILUTION_KEYS},
    ),
    EARLY_DETECTION: FindingsSchema(
        type=EARLY_DETECTION,
        area=AnalysisArea.EARLY_DETECTION,
        collection="tests",
        columns=("sample_code", "identification", "variety", "units_evaluated", "severity_scale"),
        nested={"severity_scale": SEVERITY_KEYS},
    ),
}


def schema_for(tag: Any) -> Optional[FindingsSchema]:
    if not isinstance(tag, str):
        return None
    return SCHEMAS.get(tag)


# ===============================================================
# Draft helpers
# ===============================================================

def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _draft_rows(draft: Mapping[str, Any], *keys: str) -> List[Mapping[str, Any]]:
    for k in keys:
        rows = draft.get(k)
        if isinstance(rows, list):
            return [r for r in rows if isinstance(r, Mapping)]
    return []


def _nested_values(raw: Any, keys: Iterable[str]) -> Dict[str, str]:
    source = raw if isinstance(raw, Mapping) else {}
    return {k: _text(source.get(k)) for k in keys}


def _binary_result(value: Any) -> str:
    v = _text(value).lower()
    return _RESULT_ALIASES.get(v, v)


def _tagged(schema: FindingsSchema, rows: List[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if len(rows) < schema.min_rows:
        return None
    payload = {"type": schema.type, schema.collection: rows}
    validate_findings(payload)
    return payload


# ===============================================================
# Encoders (one per analysis area)
# ===============================================================

_NEMATOLOGY_KINDS = {
    "negative": "negative",
    NEMATOLOGY_NEGATIVE: "negative",
    "positive": "positive",
    NEMATOLOGY_POSITIVE: "positive",
}


def nematology_kind(draft: Mapping[str, Any], result_type: Any = "") -> str:
    """
    negative/positive for a nematology draft, or "" when undecided.

    The result's own result_type decides; a kind stated inside the draft
    must agree with it.
    """
    column = _NEMATOLOGY_KINDS.get(_binary_result(result_type), "")
    stated = _NEMATOLOGY_KINDS.get(
        _binary_result(draft.get("result_type") or draft.get("type")), ""
    )
    if column and stated and column != stated:
        raise FindingsInvalid(
            [f"findings are tagged {stated} but the result type is {column}"]
        )
    return column or stated


def _encode_nematology(draft: Mapping[str, Any], lookups: Lookups, result_type: str = "") -> Optional[Dict[str, Any]]:
    kind = nematology_kind(draft, result_type)
    rows = _draft_rows(draft, "nematodes", "rows")

    if kind == "negative":
        first = rows[0] if rows else draft
        quantity = _text(first.get("quantity"))
        if not quantity:
            return None
        name = lookups.analyte_name(first.get("name"), "nematode") or NEMATODE_NEGATIVE_LABEL
        return _tagged(SCHEMAS[NEMATOLOGY_NEGATIVE], [{"name": name, "quantity": quantity}])

    out = []
    for row in rows:
        name = lookups.analyte_name(row.get("name"), "nematode")
        if not name:
            continue
        out.append({"name": name, "quantity": _text(row.get("quantity"))})
    return _tagged(SCHEMAS[NEMATOLOGY_POSITIVE], out)


def _encode_virology(draft: Mapping[str, Any], lookups: Lookups, result_type: str = "") -> Optional[Dict[str, Any]]:
    out = []
    for row in _draft_rows(draft, "tests", "rows"):
        method = _text(row.get("method"))
        virus = _text(row.get("virus"))
        result = _binary_result(row.get("result"))
        if not (method and virus and result):
            continue
        out.append({
            "identification": _text(row.get("identification")),
            "method": lookups.method_name(method),
            "virus": lookups.analyte_name(virus, "virus"),
            "result": result,
        })
    return _tagged(SCHEMAS[VIROLOGY], out)


def _encode_bacteriology(draft: Mapping[str, Any], lookups: Lookups, result_type: str = "") -> Optional[Dict[str, Any]]:
    out = []
    for row in _draft_rows(draft, "tests", "rows"):
        method = _text(row.get("method"))
        microorganism = _text(row.get("microorganism"))
        result = _text(row.get("result"))
        if not (method and microorganism and result):
            continue
        out.append({
            "identification": _text(row.get("identification")),
            "method": lookups.method_name(method),
            "microorganism": lookups.analyte_name(microorganism, "bacteria"),
            "result": result,
        })
    return _tagged(SCHEMAS[BACTERIOLOGY], out)


def _encode_phytopathology(draft: Mapping[str, Any], lookups: Lookups, result_type: str = "") -> Optional[Dict[str, Any]]:
    out = []
    for row in _draft_rows(draft, "tests", "rows"):
        microorganism = _text(row.get("microorganism"))
        dilutions = _nested_values(row.get("dilutions"), DILUTION_KEYS)
        if not microorganism or not any(dilutions.values()):
            continue
        out.append({
            "identification": _text(row.get("identification")),
            "microorganism": lookups.analyte_name(microorganism, "fungus"),
            "dilutions": dilutions,
        })
    return _tagged(SCHEMAS[PHYTOPATHOLOGY], out)


def _encode_early_detection(draft: Mapping[str, Any], lookups: Lookups, result_type: str = "") -> Optional[Dict[str, Any]]:
    out = []
    for row in _draft_rows(draft, "tests", "rows"):
        values = {
            "sample_code": _text(row.get("sample_code")),
            "identification": _text(row.get("identification")),
            "variety": _text(row.get("variety")),
            "units_evaluated": _text(row.get("units_evaluated")),
        }
        if not all(values.values()):
            continue
        values["severity_scale"] = _nested_values(row.get("severity_scale"), SEVERITY_KEYS)
        out.append(values)
    return _tagged(SCHEMAS[EARLY_DETECTION], out)


def _encode_generic(draft: Any, lookups: Lookups, result_type: str = "") -> Optional[Any]:
    if draft is None:
        return None
    if isinstance(draft, str):
        text = draft.strip()
        return {"text": text} if text else None
    return draft


Encoder = Callable[[Any, Lookups, str], Optional[Any]]

ENCODERS: Dict[AnalysisArea, Encoder] = {
    AnalysisArea.NEMATOLOGY: _encode_nematology,
    AnalysisArea.VIROLOGY: _encode_virology,
    AnalysisArea.BACTERIOLOGY: _encode_bacteriology,
    AnalysisArea.PHYTOPATHOLOGY: _encode_phytopathology,
    AnalysisArea.EARLY_DETECTION: _encode_early_detection,
    AnalysisArea.UNKNOWN: _encode_generic,
}

_missing = set(AnalysisArea) - set(ENCODERS)
if _missing:
    raise RuntimeError(f"No findings encoder for: {sorted(a.value for a in _missing)}")


# ===============================================================
# PUBLIC API
# ===============================================================

def parse_findings_text(value: Any) -> Any:
    """
    Findings may arrive as a JSON string. Parse it when possible; other
    text is returned unchanged.
    """
    if not isinstance(value, str):
        return value
    stripped = value.strip()
    if not stripped or stripped[0] not in "{[":
        return value
    try:
        return json.loads(stripped)
    except ValueError:
        return value


def encode_findings(
    area: Any,
    draft: Any,
    lookups: Lookups = EMPTY_LOOKUPS,
    result_type: Any = "",
) -> Optional[Any]:
    """
    Build the stored findings payload for `draft` in analysis `area`.

    Returns None when no row qualifies for the area; callers treat that
    as "not complete, do not persist". Text drafts are only meaningful
    for the UNKNOWN area. `result_type` is the result's own column and
    selects the nematology variant.
    """
    resolved = classify_area(area)
    draft = parse_findings_text(draft)

    if resolved is AnalysisArea.UNKNOWN:
        return _encode_generic(draft, lookups)

    if draft is None:
        return None
    if not isinstance(draft, Mapping):
        raise FindingsInvalid([f"findings for area '{resolved.value}' must be an object"])

    tag = draft.get("type")
    schema = schema_for(tag)
    if schema is not None and schema.area is not resolved:
        raise FindingsInvalid([f"type '{tag}' does not belong to area '{resolved.value}'"])

    return ENCODERS[resolved](draft, lookups, _text(result_type))


def validate_findings(payload: Any) -> None:
    """
    Strict shape check for tagged payloads. Untagged payloads and
    unknown tags are opaque and pass.
    """
    if not isinstance(payload, Mapping):
        return

    schema = schema_for(payload.get("type"))
    if schema is None:
        return

    problems: List[str] = []

    extra = set(payload) - {"type", schema.collection}
    if extra:
        problems.append(f"unexpected keys: {', '.join(sorted(extra))}")

    rows = payload.get(schema.collection)
    if not isinstance(rows, list):
        problems.append(f"'{schema.collection}' must be a list")
        raise FindingsInvalid(problems)

    if len(rows) < schema.min_rows:
        problems.append(f"'{schema.collection}' needs at least {schema.min_rows} entry")
    if schema.max_rows is not None and len(rows) > schema.max_rows:
        problems.append(f"'{schema.collection}' allows at most {schema.max_rows} entry")

    expected = set(schema.columns)
    for i, row in enumerate(rows):
        where = f"{schema.collection}[{i}]"
        if not isinstance(row, Mapping):
            problems.append(f"{where} must be an object")
            continue

        keys = set(row)
        if keys != expected:
            if expected - keys:
                problems.append(f"{where} missing: {', '.join(sorted(expected - keys))}")
            if keys - expected:
                problems.append(f"{where} unexpected: {', '.join(sorted(keys - expected))}")

        for col, nested_keys in schema.nested.items():
            nested = row.get(col)
            if not isinstance(nested, Mapping):
                problems.append(f"{where}.{col} must be an object")
            elif set(nested) != set(nested_keys):
                problems.append(f"{where}.{col} keys must be {', '.join(nested_keys)}")

        for col, allowed in schema.choices.items():
            if col in row and row[col] not in allowed:
                problems.append(f"{where}.{col} must be one of {', '.join(allowed)}")

    if problems:
        raise FindingsInvalid(problems)


def render_findings(payload: Any) -> Dict[str, Any]:
    """
    Turn a stored findings payload into a table:
    {"type", "columns", "rows"} for known tags, {"type": "raw", "raw"}
    for anything else, {"type": "empty"} for None.
    """
    if payload is None:
        return {"type": "empty", "columns": [], "rows": []}

    schema = schema_for(payload.get("type")) if isinstance(payload, Mapping) else None
    if schema is None:
        raw = payload if isinstance(payload, str) else json.dumps(payload, ensure_ascii=False)
        return {"type": "raw", "raw": raw}

    rows = [
        {k: (dict(v) if isinstance(v, Mapping) else v) for k, v in row.items()}
        for row in payload.get(schema.collection) or []
        if isinstance(row, Mapping)
    ]
    return {"type": schema.type, "columns": list(schema.columns), "rows": rows}


def referenced_ids(area: Any, draft: Any) -> Tuple[List[str], List[str]]:
    """
    Method and analyte identifiers a draft refers to, for loading Lookups.
    """
    resolved = classify_area(area)
    draft = parse_findings_text(draft)
    if not isinstance(draft, Mapping):
        return [], []

    methods: List[str] = []
    analytes: List[str] = []

    for row in _draft_rows(draft, "nematodes", "tests", "rows"):
        if row.get("method") not in (None, ""):
            methods.append(_key(row["method"]))
        for col in ("virus", "microorganism"):
            if row.get(col) not in (None, ""):
                analytes.append(_key(row[col]))
        if resolved is AnalysisArea.NEMATOLOGY and row.get("name") not in (None, ""):
            analytes.append(_key(row["name"]))

    return methods, analytes
