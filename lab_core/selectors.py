# lab_core/selectors.py

from django.db.models import Prefetch

from lab_core.models import AppliedInterpretation, Result, Sample, SampleTest
from lab_core.workflows.result_lifecycle import VALIDATED


def has_validated_results(sample) -> bool:
    """
    True while at least one result of `sample` is validated.

    Accepts a Sample or its primary key.
    """
    sample_id = getattr(sample, "pk", sample)
    return Result.objects.filter(sample_id=sample_id, status=VALIDATED).exists()


def sample_detail_queryset():
    return Sample.objects.select_related("client", "project").prefetch_related(
        Prefetch(
            "tests",
            queryset=SampleTest.objects.select_related("test", "method", "test__default_method"),
        ),
        "units__results__analyte",
        Prefetch(
            "results",
            queryset=Result.objects.select_related("sample_test__test", "performed_by", "validated_by"),
        ),
        "reports",
        Prefetch(
            "interpretations",
            queryset=AppliedInterpretation.objects.select_related("rule"),
        ),
    )


def result_queryset():
    return Result.objects.select_related(
        "sample", "sample_test__test", "performed_by", "validated_by"
    )
