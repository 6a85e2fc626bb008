# lab_core/urls.py
from django.urls import include, path
from rest_framework.routers import DefaultRouter

from .views import (
    HealthView,
    InterpretationRuleViewSet,
    ResultViewSet,
    SampleViewSet,
    SlaStatsView,
    WorkflowDefinitionView,
)

app_name = "lab_core"

router = DefaultRouter()
router.register(r"samples", SampleViewSet, basename="sample")
router.register(r"results", ResultViewSet, basename="result")
router.register(r"interpretation-rules", InterpretationRuleViewSet, basename="interpretation-rule")

urlpatterns = [
    path("workflows/<str:kind>/", WorkflowDefinitionView.as_view(), name="workflow-definition"),
    path("sla/stats/", SlaStatsView.as_view(), name="sla-stats"),
    path("health/", HealthView.as_view(), name="health"),
    path("", include(router.urls)),
]
