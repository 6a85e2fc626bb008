# lab_core/findings/__init__.py
from lab_core.findings.areas import AnalysisArea, classify_area
from lab_core.findings.registry import (
    NEMATODE_NEGATIVE_LABEL,
    SCHEMAS,
    Lookups,
    encode_findings,
    parse_findings_text,
    render_findings,
    validate_findings,
)

__all__ = [
    "AnalysisArea",
    "classify_area",
    "NEMATODE_NEGATIVE_LABEL",
    "SCHEMAS",
    "Lookups",
    "encode_findings",
    "parse_findings_text",
    "render_findings",
    "validate_findings",
]
