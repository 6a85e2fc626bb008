# lab_core/views.py
from __future__ import annotations

from django.db import connection
from django.http import Http404
from drf_spectacular.utils import extend_schema
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from .filters import InterpretationRuleFilter, ResultFilter, SampleFilter
from .findings import render_findings
from .mixins import CurrentUserViewMixin
from .models import InterpretationRule
from .permissions import IsEditorOrReadOnly, IsValidatorOrReadOnly
from .selectors import result_queryset, sample_detail_queryset
from .serializers import (
    AppliedInterpretationSerializer,
    InterpretationRuleSerializer,
    RequestedTestSerializer,
    ResultSerializer,
    SampleDetailSerializer,
    SampleSerializer,
    SampleTestSerializer,
    StatusChangeSerializer,
    StatusTransitionSerializer,
)
from .services import interpretations as interpretation_service
from .services import results as result_service
from .services import samples as sample_service
from .workflows import workflow_definition
from .workflows.sla_scanner import sla_stats


# ===============================================================
# Samples
# ===============================================================
class SampleViewSet(CurrentUserViewMixin, viewsets.ModelViewSet):
    """
    Sample CRUD. Writes go through lab_core.services.samples so that
    field locks, SLA derivation and the status audit trail always apply.
    """

    serializer_class = SampleSerializer
    permission_classes = [IsEditorOrReadOnly]
    filterset_class = SampleFilter

    def get_queryset(self):
        return sample_detail_queryset()

    def get_serializer_class(self):
        if self.action == "retrieve":
            return SampleDetailSerializer
        return SampleSerializer

    def perform_create(self, serializer):
        data = dict(serializer.validated_data)
        tests = data.pop("tests", [])
        serializer.instance = sample_service.create_sample(
            data=data, tests=tests, user=self.request.user
        )

    def perform_update(self, serializer):
        serializer.instance = sample_service.update_sample(
            sample_id=serializer.instance.pk,
            changes=dict(serializer.validated_data),
            user=self.request.user,
            replace=not serializer.partial,
        )

    def destroy(self, request, *args, **kwargs):
        sample = self.get_object()
        removed = sample_service.purge_sample(sample_id=sample.pk, user=request.user)
        return Response({"deleted": sample.pk, "removed": removed}, status=status.HTTP_200_OK)

    @extend_schema(responses=StatusTransitionSerializer(many=True))
    @action(detail=True, methods=["get"], url_path="transitions")
    def transitions(self, request, pk=None):
        sample = self.get_object()
        qs = sample.transitions.select_related("by_user").order_by("created_at", "id")
        return Response(StatusTransitionSerializer(qs, many=True).data)

    @extend_schema(request=StatusChangeSerializer)
    @action(detail=True, methods=["post"], url_path="transition")
    def transition(self, request, pk=None):
        sample = self.get_object()
        payload = StatusChangeSerializer(data=request.data)
        payload.is_valid(raise_exception=True)

        outcome = sample_service.change_sample_status(
            sample_id=sample.pk,
            to_status=payload.validated_data["to_status"],
            user=request.user,
            reason=payload.validated_data["reason"],
        )
        return Response(outcome, status=status.HTTP_200_OK)

    @extend_schema(request=RequestedTestSerializer, responses=SampleTestSerializer(many=True))
    @action(detail=True, methods=["get", "post"], url_path="tests")
    def tests(self, request, pk=None):
        sample = self.get_object()
        if request.method == "GET":
            qs = sample.tests.select_related("test", "method").order_by("id")
            return Response(SampleTestSerializer(qs, many=True).data)

        payload = RequestedTestSerializer(data=request.data)
        payload.is_valid(raise_exception=True)
        sample_test = sample_service.add_sample_test(
            sample_id=sample.pk,
            test=payload.validated_data["test"],
            method=payload.validated_data.get("method"),
            user=request.user,
        )
        return Response(SampleTestSerializer(sample_test).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=["delete"], url_path=r"tests/(?P<sample_test_id>[^/.]+)")
    def remove_test(self, request, pk=None, sample_test_id=None):
        sample = self.get_object()
        sample_service.remove_sample_test(
            sample_id=sample.pk, sample_test_id=sample_test_id, user=request.user
        )
        return Response(status=status.HTTP_204_NO_CONTENT)

    @extend_schema(responses=AppliedInterpretationSerializer(many=True))
    @action(detail=True, methods=["get"], url_path="interpretations")
    def interpretations(self, request, pk=None):
        sample = self.get_object()
        qs = sample.interpretations.select_related("rule").order_by("id")
        return Response(AppliedInterpretationSerializer(qs, many=True).data)

    @extend_schema(request=None)
    @action(detail=True, methods=["post"], url_path="interpretations/evaluate")
    def evaluate_interpretations(self, request, pk=None):
        sample = self.get_object()
        applied = interpretation_service.evaluate_sample(sample_id=sample.pk, user=request.user)
        return Response(
            {"applied": AppliedInterpretationSerializer(applied, many=True).data, "count": len(applied)}
        )


# ===============================================================
# Results
# ===============================================================
class ResultViewSet(CurrentUserViewMixin, viewsets.ModelViewSet):
    serializer_class = ResultSerializer
    permission_classes = [IsEditorOrReadOnly]
    filterset_class = ResultFilter

    def get_queryset(self):
        return result_queryset()

    def perform_create(self, serializer):
        serializer.instance = result_service.create_result(
            data=dict(serializer.validated_data), user=self.request.user
        )

    def perform_update(self, serializer):
        serializer.instance = result_service.update_result(
            result_id=serializer.instance.pk,
            patch=dict(serializer.validated_data),
            user=self.request.user,
        )

    def perform_destroy(self, instance):
        result_service.delete_result(result_id=instance.pk, user=self.request.user)

    @extend_schema(request=None)
    @action(detail=True, methods=["patch"], url_path="validate")
    def validate(self, request, pk=None):
        result = self.get_object()
        result = result_service.validate_result(result_id=result.pk, user=request.user)
        return Response(self.get_serializer(result).data)

    @action(detail=True, methods=["get"], url_path="findings")
    def findings(self, request, pk=None):
        result = self.get_object()
        return Response(render_findings(result.findings))


# ===============================================================
# Interpretation rules
# ===============================================================
class InterpretationRuleViewSet(CurrentUserViewMixin, viewsets.ModelViewSet):
    """
    Rules are deactivated, never deleted, so applied interpretations keep
    pointing at the rule that produced them.
    """

    serializer_class = InterpretationRuleSerializer
    permission_classes = [IsValidatorOrReadOnly]
    filterset_class = InterpretationRuleFilter
    http_method_names = ["get", "post", "put", "patch", "head", "options"]

    def get_queryset(self):
        return InterpretationRule.objects.all()

    @extend_schema(request=None)
    @action(detail=True, methods=["post"], url_path="deactivate")
    def deactivate(self, request, pk=None):
        rule = self.get_object()
        rule = interpretation_service.deactivate_rule(rule_id=rule.pk, user=request.user)
        return Response(self.get_serializer(rule).data)


# ===============================================================
# Introspection
# ===============================================================
class WorkflowDefinitionView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request, kind: str):
        try:
            return Response(workflow_definition(kind))
        except ValueError:
            raise Http404(f"Unknown workflow: {kind}")


class SlaStatsView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        return Response(sla_stats())


class HealthView(APIView):
    permission_classes = [AllowAny]
    authentication_classes = []

    def get(self, request):
        connection.ensure_connection()
        return Response({"status": "ok"})
