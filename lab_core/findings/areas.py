# lab_core/findings/areas.py
from __future__ import annotations

import unicodedata
from enum import Enum
from typing import Optional, Tuple


class AnalysisArea(str, Enum):
    NEMATOLOGY = "nematologia"
    VIROLOGY = "virologia"
    BACTERIOLOGY = "bacteriologia"
    PHYTOPATHOLOGY = "fitopatologia"
    EARLY_DETECTION = "deteccion_precoz"
    UNKNOWN = "unknown"


# First match wins; markers are compared against the folded area string.
_AREA_MARKERS: Tuple[Tuple[Tuple[str, ...], AnalysisArea], ...] = (
    (("nematolog",), AnalysisArea.NEMATOLOGY),
    (("virolog",), AnalysisArea.VIROLOGY),
    (("fitopatolog",), AnalysisArea.PHYTOPATHOLOGY),
    (("bacteriolog",), AnalysisArea.BACTERIOLOGY),
    (("deteccion", "precoz"), AnalysisArea.EARLY_DETECTION),
)


def _fold(text: str) -> str:
    decomposed = unicodedata.normalize("NFKD", text)
    return "".join(c for c in decomposed if not unicodedata.combining(c)).lower()


def classify_area(raw: Optional[str]) -> AnalysisArea:
    """
    Map a test-catalog area string ("Virología", "deteccion_precoz", ...)
    onto an AnalysisArea. Unmatched strings classify as UNKNOWN.
    """
    if isinstance(raw, AnalysisArea):
        return raw

    folded = _fold(str(raw or ""))
    if not folded:
        return AnalysisArea.UNKNOWN

    for markers, area in _AREA_MARKERS:
        if any(m in folded for m in markers):
            return area

    return AnalysisArea.UNKNOWN
