# lab_core/findings/lookups.py
from __future__ import annotations

from typing import Any, Dict, Iterable, List

from lab_core.findings.registry import Lookups, referenced_ids
from lab_core.models import Analyte, Method


def _numeric(ids: Iterable[str]) -> List[int]:
    return [int(i) for i in ids if i.isdigit()]


def load_lookups(area: Any, draft: Any) -> Lookups:
    """
    Load display names for the method and analyte IDs referenced by a
    findings draft. Values that are not numeric IDs are left for the
    encoder to keep verbatim.
    """
    method_ids, analyte_ids = referenced_ids(area, draft)

    methods: Dict[str, str] = {}
    for pk, name in Method.objects.filter(pk__in=_numeric(method_ids)).values_list("pk", "name"):
        methods[str(pk)] = name

    analytes: Dict[str, Dict[str, str]] = {}
    for analyte in Analyte.objects.filter(pk__in=_numeric(analyte_ids)):
        analytes.setdefault(analyte.category, {})[str(analyte.pk)] = analyte.display_name

    return Lookups(methods=methods, analytes=analytes)
