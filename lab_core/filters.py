# lab_core/filters.py
import django_filters as df

from .models import InterpretationRule, Result, Sample


class SampleFilter(df.FilterSet):
    code = df.CharFilter(field_name="code", lookup_expr="icontains")
    client = df.NumberFilter(field_name="client_id")
    project = df.NumberFilter(field_name="project_id")
    species = df.CharFilter(field_name="species", lookup_expr="icontains")
    received_date = df.DateFromToRangeFilter()

    class Meta:
        model = Sample
        fields = ["code", "client", "project", "status", "sla_status", "sla_type", "species", "received_date"]


class ResultFilter(df.FilterSet):
    sample = df.NumberFilter(field_name="sample_id")

    class Meta:
        model = Result
        fields = ["sample", "status", "result_type"]


class InterpretationRuleFilter(df.FilterSet):
    analyte = df.CharFilter(field_name="analyte", lookup_expr="icontains")

    class Meta:
        model = InterpretationRule
        fields = ["area", "analyte", "severity", "active"]
