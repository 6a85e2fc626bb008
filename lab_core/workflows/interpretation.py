# lab_core/workflows/interpretation.py
from __future__ import annotations

"""
Interpretation rules.

A rule names an analyte (substring, case-insensitive), a comparator and
a threshold object, optionally scoped to an analysis area, a species and
a next crop. Every unit reading that satisfies the rule produces one
interpretation message built from the rule's template.

PURE LOGIC. Rules may be model instances or anything with the same
attributes.
"""

from dataclasses import dataclass
from typing import Any, Iterable, List, Mapping, Optional, Tuple

from lab_core.findings.areas import AnalysisArea, classify_area


GREATER = ">"
GREATER_OR_EQUAL = ">="
EQUAL = "="
IN = "in"

COMPARATORS: Tuple[str, ...] = (GREATER, GREATER_OR_EQUAL, EQUAL, IN)
SEVERITIES: Tuple[str, ...] = ("low", "moderate", "high")

MISSING = "N/A"


@dataclass(frozen=True)
class Reading:
    """One unit result as seen by the rules."""

    analyte_names: Tuple[str, ...]
    value: str = ""
    flag: str = ""
    area: AnalysisArea = AnalysisArea.UNKNOWN
    unit_code: str = ""
    unit_label: str = ""


@dataclass(frozen=True)
class SampleContext:
    code: str = ""
    species: str = ""
    variety: str = ""
    next_crop: str = ""
    readings: Tuple[Reading, ...] = ()


@dataclass(frozen=True)
class Interpretation:
    rule: Any
    message: str
    severity: str


# ===============================================================
# Helpers
# ===============================================================

def _norm(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip().casefold()


def _number(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    try:
        return float(str(value).strip().replace(",", "."))
    except ValueError:
        return None


def _threshold(rule: Any) -> Mapping[str, Any]:
    raw = getattr(rule, "threshold", None)
    return raw if isinstance(raw, Mapping) else {}


# ===============================================================
# Threshold contract
# ===============================================================

def threshold_problems(comparator: Any, threshold: Any) -> List[str]:
    """
    Problems with a comparator/threshold pair; empty when usable.
    """
    if comparator not in COMPARATORS:
        return [f"comparator must be one of {', '.join(COMPARATORS)}"]
    if not isinstance(threshold, Mapping):
        return ["threshold must be an object"]

    if comparator in (GREATER, GREATER_OR_EQUAL):
        if _number(threshold.get("value")) is None:
            return [f"'{comparator}' needs a numeric threshold value"]
    elif comparator == EQUAL:
        if threshold.get("value") in (None, "") and not _norm(threshold.get("flag")):
            return ["'=' needs a threshold value or flag"]
    elif not isinstance(threshold.get("values"), list) or not threshold["values"]:
        return ["'in' needs a non-empty list of threshold values"]

    return []


# ===============================================================
# Evaluation
# ===============================================================

def condition_met(reading: Reading, comparator: str, threshold: Mapping[str, Any]) -> bool:
    if comparator in (GREATER, GREATER_OR_EQUAL):
        value = _number(reading.value)
        limit = _number(threshold.get("value"))
        if value is None or limit is None:
            return False
        return value > limit if comparator == GREATER else value >= limit

    if comparator == EQUAL:
        expected = threshold.get("value")
        if expected not in (None, ""):
            value, limit = _number(reading.value), _number(expected)
            if value is not None and limit is not None:
                return value == limit
            return _norm(reading.value) == _norm(expected)
        if _norm(threshold.get("flag")):
            return _norm(reading.flag) == _norm(threshold["flag"])
        return False

    if comparator == IN:
        values = threshold.get("values")
        if not isinstance(values, list):
            return False
        accepted = {_norm(v) for v in values} - {""}
        observed = {_norm(reading.value), _norm(reading.flag)}
        observed.update(_norm(n) for n in reading.analyte_names)
        return bool(accepted & observed)

    return False


def _applies_to_sample(rule: Any, sample: SampleContext) -> bool:
    species = _norm(getattr(rule, "species", ""))
    if species and species != _norm(sample.species):
        return False
    crop_next = _norm(getattr(rule, "crop_next", ""))
    if crop_next and crop_next != _norm(sample.next_crop):
        return False
    return True


def relevant_readings(rule: Any, sample: SampleContext) -> List[Reading]:
    """
    Readings whose analyte name contains the rule's analyte, restricted to
    the rule's area when it names one.
    """
    needle = _norm(getattr(rule, "analyte", ""))
    if not needle:
        return []

    area = classify_area(getattr(rule, "area", "")) if _norm(getattr(rule, "area", "")) else None

    return [
        r for r in sample.readings
        if (area is None or r.area is area)
        and any(needle in _norm(name) for name in r.analyte_names)
    ]


def render_message(template: str, reading: Reading, sample: SampleContext) -> str:
    replacements = {
        "{analyte}": reading.analyte_names[0] if reading.analyte_names else "",
        "{value}": reading.value,
        "{flag}": reading.flag,
        "{unit_code}": reading.unit_code,
        "{unit_label}": reading.unit_label,
        "{species}": sample.species,
        "{variety}": sample.variety,
        "{sample_code}": sample.code,
    }
    message = template or ""
    for placeholder, value in replacements.items():
        message = message.replace(placeholder, str(value).strip() or MISSING)
    return message


def evaluate_rule(rule: Any, sample: SampleContext) -> List[Interpretation]:
    if not _applies_to_sample(rule, sample):
        return []

    comparator = getattr(rule, "comparator", "")
    threshold = _threshold(rule)
    severity = getattr(rule, "severity", "") or "low"

    return [
        Interpretation(rule=rule, message=render_message(rule.message, reading, sample), severity=severity)
        for reading in relevant_readings(rule, sample)
        if condition_met(reading, comparator, threshold)
    ]


def evaluate_rules(rules: Iterable[Any], sample: SampleContext) -> List[Interpretation]:
    """
    Evaluate rules in order. Inactive rules are skipped.
    """
    out: List[Interpretation] = []
    for rule in rules:
        if getattr(rule, "active", True):
            out.extend(evaluate_rule(rule, sample))
    return out
