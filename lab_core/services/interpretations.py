# lab_core/services/interpretations.py
"""
Applies interpretation rules to a sample's unit readings.

Re-evaluation replaces the sample's interpretations wholesale under the
sample row lock.
"""

from __future__ import annotations

import logging
from typing import List

from django.db import transaction

from lab_core.findings import classify_area
from lab_core.models import AppliedInterpretation, InterpretationRule, Sample, UnitResult
from lab_core.permissions import role_for_user
from lab_core.workflows import is_editor, is_validator
from lab_core.workflows.errors import RoleNotPermitted
from lab_core.workflows.interpretation import Reading, SampleContext, evaluate_rules

logger = logging.getLogger(__name__)


def _reading(unit_result: UnitResult) -> Reading:
    analyte = unit_result.analyte
    names = tuple(n for n in (analyte.name, analyte.scientific_name) if n) if analyte else ()
    area = unit_result.test.area if unit_result.test_id else ""
    return Reading(
        analyte_names=names,
        value=unit_result.result_value,
        flag=unit_result.result_flag,
        area=classify_area(area),
        unit_code=unit_result.unit.code,
        unit_label=unit_result.unit.label,
    )


def sample_context(sample: Sample) -> SampleContext:
    unit_results = (
        UnitResult.objects.filter(unit__sample=sample)
        .select_related("unit", "analyte", "test")
        .order_by("unit_id", "id")
    )
    return SampleContext(
        code=sample.code,
        species=sample.species,
        variety=sample.variety,
        next_crop=sample.next_crop,
        readings=tuple(_reading(ur) for ur in unit_results),
    )


def evaluate_sample(*, sample_id: int, user=None) -> List[AppliedInterpretation]:
    """
    Evaluate every active rule against the sample and store the matches,
    replacing earlier interpretations.
    """
    role = role_for_user(user)
    if not is_editor(role):
        raise RoleNotPermitted(f"Role {role} cannot evaluate interpretations")

    with transaction.atomic():
        sample = Sample.objects.select_for_update().get(pk=sample_id)
        context = sample_context(sample)
        rules = InterpretationRule.objects.filter(active=True).order_by("id")
        matches = evaluate_rules(rules, context)

        cleared, _ = AppliedInterpretation.objects.filter(sample=sample).delete()
        applied = [
            AppliedInterpretation.objects.create(
                sample=sample,
                rule=match.rule,
                message=match.message,
                severity=match.severity,
            )
            for match in matches
        ]

    logger.info(
        "Sample %s interpretations: %s cleared, %s applied",
        sample_id, cleared, len(applied),
    )
    return applied


def deactivate_rule(*, rule_id: int, user=None) -> InterpretationRule:
    role = role_for_user(user)
    if not is_validator(role):
        raise RoleNotPermitted(f"Role {role} cannot manage interpretation rules")

    rule = InterpretationRule.objects.get(pk=rule_id)
    if rule.active:
        rule.active = False
        rule.save(update_fields=["active", "updated_at"])
        logger.info("Interpretation rule %s deactivated", rule.pk)
    return rule
