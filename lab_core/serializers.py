# lab_core/serializers.py
from __future__ import annotations

from typing import Any, Dict, List

from django.contrib.auth import get_user_model
from rest_framework import serializers

from .models import (
    AppliedInterpretation,
    AuditLog,
    Client,
    InterpretationRule,
    Method,
    Project,
    Report,
    Result,
    Sample,
    SampleTest,
    SampleUnit,
    StatusTransition,
    TestCatalog,
    UnitResult,
)
from .findings import classify_area
from .selectors import has_validated_results
from .workflows import allowed_next_states
from .workflows.errors import DerivedFieldSupplied
from .workflows.interpretation import threshold_problems
from .workflows.result_lifecycle import DERIVED_FIELDS

User = get_user_model()


# ===============================================================
# Helpers
# ===============================================================

class ImmutableFieldsMixin:
    """
    Blocks updates that would change selected fields. Resending the
    stored value (full PUT payloads) is accepted.
    """
    immutable_fields: tuple[str, ...] = ()

    def validate(self, attrs: Dict[str, Any]) -> Dict[str, Any]:
        if self.instance is not None and self.immutable_fields:
            for field in self.immutable_fields:
                if field in attrs and attrs[field] != getattr(self.instance, field, None):
                    raise serializers.ValidationError(
                        {field: "This field cannot be changed after creation."}
                    )
        return super().validate(attrs)


class DerivedFieldsMixin:
    """
    Rejects payloads that carry server-derived columns instead of
    silently dropping them as read-only fields.
    """
    derived_fields: tuple[str, ...] = ()

    def validate(self, attrs: Dict[str, Any]) -> Dict[str, Any]:
        incoming = getattr(self, "initial_data", None) or {}
        supplied = [f for f in self.derived_fields if f in incoming]
        if supplied:
            raise DerivedFieldSupplied(supplied)
        return super().validate(attrs)


class UserSlimSerializer(serializers.ModelSerializer):
    class Meta:
        model = User
        fields = ("id", "username", "email")
        read_only_fields = fields


# ===============================================================
# Reference data
# ===============================================================

class ClientSerializer(serializers.ModelSerializer):
    class Meta:
        model = Client
        fields = ("id", "name", "rut", "contact_email")
        read_only_fields = ("id",)


class ProjectSerializer(serializers.ModelSerializer):
    class Meta:
        model = Project
        fields = ("id", "code", "name")
        read_only_fields = ("id",)


class SampleTestSerializer(serializers.ModelSerializer):
    test_code = serializers.CharField(source="test.code", read_only=True)
    test_name = serializers.CharField(source="test.name", read_only=True)
    area = serializers.CharField(source="test.area", read_only=True)
    method_name = serializers.CharField(source="method.name", read_only=True, default=None)

    class Meta:
        model = SampleTest
        fields = ("id", "test", "test_code", "test_name", "area", "method", "method_name")
        read_only_fields = fields


class RequestedTestSerializer(serializers.Serializer):
    test = serializers.PrimaryKeyRelatedField(queryset=TestCatalog.objects.filter(active=True))
    method = serializers.PrimaryKeyRelatedField(
        queryset=Method.objects.all(), required=False, allow_null=True
    )


class RequestedTestField(serializers.Field):
    """
    A requested test given as a catalog id or as {"test", "method"}.
    """

    def to_internal_value(self, data):
        payload = data if isinstance(data, dict) else {"test": data}
        serializer = RequestedTestSerializer(data=payload)
        serializer.is_valid(raise_exception=True)
        return dict(serializer.validated_data)

    def to_representation(self, value):
        return value


class UnitResultSerializer(serializers.ModelSerializer):
    analyte_name = serializers.CharField(source="analyte.display_name", read_only=True, default=None)

    class Meta:
        model = UnitResult
        fields = ("id", "analyte", "analyte_name", "test", "result_value", "result_flag", "notes")
        read_only_fields = fields


class SampleUnitSerializer(serializers.ModelSerializer):
    results = UnitResultSerializer(many=True, read_only=True)

    class Meta:
        model = SampleUnit
        fields = ("id", "code", "label", "results")
        read_only_fields = fields


class ReportSerializer(serializers.ModelSerializer):
    class Meta:
        model = Report
        fields = ("id", "code", "status", "generated_at")
        read_only_fields = fields


# ===============================================================
# Sample
# ===============================================================

class SampleSerializer(DerivedFieldsMixin, ImmutableFieldsMixin, serializers.ModelSerializer):
    client_name = serializers.CharField(source="client.name", read_only=True)
    project_code = serializers.CharField(source="project.code", read_only=True, default=None)

    # Status is validated by the workflow, not by a choice list
    status = serializers.CharField(required=False)
    status_reason = serializers.CharField(required=False, allow_blank=True, write_only=True)

    tests = serializers.ListField(child=RequestedTestField(), required=False, write_only=True)

    allowed_next_states = serializers.SerializerMethodField()
    has_validated_results = serializers.SerializerMethodField()

    immutable_fields = ("tests",)
    derived_fields = ("due_date",)

    class Meta:
        model = Sample
        fields = (
            "id",
            "code",
            "client",
            "client_name",
            "project",
            "project_code",
            "received_date",
            "sla_type",
            "due_date",
            "sla_status",
            "status",
            "status_reason",
            "allowed_next_states",
            "has_validated_results",
            "species",
            "variety",
            "rootstock",
            "planting_year",
            "previous_crop",
            "next_crop",
            "fallow",
            "region",
            "locality",
            "taken_by",
            "sampling_method",
            "suspected_pathogen",
            "delivery_method",
            "client_notes",
            "reception_notes",
            "sampling_observations",
            "reception_observations",
            "tests",
            "created_at",
            "updated_at",
        )
        read_only_fields = (
            "id",
            "client_name",
            "project_code",
            "due_date",
            "sla_status",
            "allowed_next_states",
            "has_validated_results",
            "created_at",
            "updated_at",
        )
        # Duplicate codes surface from the database as 409
        extra_kwargs = {"code": {"validators": []}}

    def get_allowed_next_states(self, obj: Sample) -> List[str]:
        return allowed_next_states(obj.status)

    def get_has_validated_results(self, obj: Sample) -> bool:
        return has_validated_results(obj)


class ResultSerializer(DerivedFieldsMixin, ImmutableFieldsMixin, serializers.ModelSerializer):
    status = serializers.CharField(required=False)
    findings = serializers.JSONField(required=False, allow_null=True)
    validated_by = serializers.PrimaryKeyRelatedField(
        queryset=User.objects.all(), required=False, allow_null=True
    )
    performed_by = UserSlimSerializer(read_only=True)
    area = serializers.SerializerMethodField()

    immutable_fields = ("sample", "sample_test")
    derived_fields = tuple(sorted(DERIVED_FIELDS))

    class Meta:
        model = Result
        fields = (
            "id",
            "sample",
            "sample_test",
            "area",
            "status",
            "result_type",
            "severity",
            "confidence",
            "methodology",
            "diagnosis",
            "conclusion",
            "recommendations",
            "pathogen_identified",
            "pathogen_type",
            "findings",
            "performed_by",
            "performed_at",
            "validated_by",
            "validated_at",
            "created_at",
            "updated_at",
        )
        read_only_fields = (
            "id",
            "area",
            "performed_by",
            "performed_at",
            "validated_at",
            "created_at",
            "updated_at",
        )

    def get_area(self, obj: Result) -> str:
        return classify_area(obj.sample_test.test.area).value

    def validate(self, attrs: Dict[str, Any]) -> Dict[str, Any]:
        attrs = super().validate(attrs)

        if self.instance is None:
            sample = attrs.get("sample")
            sample_test = attrs.get("sample_test")
            if sample is None or sample_test is None:
                raise serializers.ValidationError("sample and sample_test are required.")
            if sample_test.sample_id != sample.pk:
                raise serializers.ValidationError(
                    {"sample_test": "This test does not belong to the given sample."}
                )

        return attrs


# ===============================================================
# Interpretation
# ===============================================================

class InterpretationRuleSerializer(serializers.ModelSerializer):
    class Meta:
        model = InterpretationRule
        fields = (
            "id",
            "area",
            "species",
            "crop_next",
            "analyte",
            "comparator",
            "threshold",
            "message",
            "severity",
            "active",
            "created_at",
            "updated_at",
        )
        read_only_fields = ("id", "created_at", "updated_at")

    def validate(self, attrs: Dict[str, Any]) -> Dict[str, Any]:
        attrs = super().validate(attrs)
        comparator = attrs.get("comparator", getattr(self.instance, "comparator", None))
        threshold = attrs.get("threshold", getattr(self.instance, "threshold", None))
        problems = threshold_problems(comparator, threshold)
        if problems:
            raise serializers.ValidationError({"threshold": problems})
        return attrs


class AppliedInterpretationSerializer(serializers.ModelSerializer):
    analyte = serializers.CharField(source="rule.analyte", read_only=True)

    class Meta:
        model = AppliedInterpretation
        fields = ("id", "rule", "analyte", "message", "severity", "created_at")
        read_only_fields = fields


class SampleDetailSerializer(SampleSerializer):
    client = ClientSerializer(read_only=True)
    project = ProjectSerializer(read_only=True)
    requested_tests = SampleTestSerializer(source="tests", many=True, read_only=True)
    units = SampleUnitSerializer(many=True, read_only=True)
    results = ResultSerializer(many=True, read_only=True)
    reports = ReportSerializer(many=True, read_only=True)
    interpretations = AppliedInterpretationSerializer(many=True, read_only=True)

    class Meta(SampleSerializer.Meta):
        fields = SampleSerializer.Meta.fields + (
            "requested_tests", "units", "results", "reports", "interpretations",
        )


# ===============================================================
# Workflow
# ===============================================================

class StatusTransitionSerializer(serializers.ModelSerializer):
    by_username = serializers.CharField(source="by_user.username", read_only=True, default=None)

    class Meta:
        model = StatusTransition
        fields = ("id", "sample", "from_status", "to_status", "by_user", "by_username", "reason", "created_at")
        read_only_fields = fields


class StatusChangeSerializer(serializers.Serializer):
    to_status = serializers.CharField()
    reason = serializers.CharField(required=False, allow_blank=True, default="")


# ===============================================================
# AuditLog (READ-ONLY)
# ===============================================================

class AuditLogSerializer(serializers.ModelSerializer):
    user_username = serializers.CharField(source="user.username", read_only=True, default=None)

    class Meta:
        model = AuditLog
        fields = ("id", "user", "user_username", "action", "details", "created_at")
        read_only_fields = fields
