# lab_core/models.py

from django.conf import settings
from django.core.exceptions import PermissionDenied
from django.db import models
from django.db.models import Q
from django.utils import timezone

from lab_core.workflows import SAMPLE_INITIAL_STATE, SAMPLE_STATES, ROLES, CONSUMER
from lab_core.workflows.guards import WorkflowWriteGuardMixin
from lab_core.workflows.interpretation import COMPARATORS, SEVERITIES
from lab_core.workflows.result_lifecycle import RESULT_STATES, PENDING
from lab_core.workflows.sla import (
    SLA_BUSINESS_DAYS,
    SLA_NORMAL,
    SLA_ON_TIME,
    SLA_STATUSES,
    calculate_sla_status,
    compute_due_date,
    normalize_sla_type,
)


def _choices(values):
    return [(v, v.replace("_", " ").capitalize()) for v in values]


# ============================================================
# Base
# ============================================================
class TimeStampedModel(models.Model):
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True


# ============================================================
# Reference data
# ============================================================
class Client(TimeStampedModel):
    name = models.CharField(max_length=255)
    rut = models.CharField(max_length=20, blank=True)
    contact_email = models.EmailField(blank=True)

    class Meta:
        ordering = ["name"]

    def __str__(self):
        return self.name


class Project(TimeStampedModel):
    code = models.CharField(max_length=50, unique=True)
    name = models.CharField(max_length=255)

    def __str__(self):
        return f"{self.code} - {self.name}"


class Method(TimeStampedModel):
    code = models.CharField(max_length=50, unique=True)
    name = models.CharField(max_length=255)
    matrix = models.CharField(max_length=100, blank=True)

    def __str__(self):
        return self.name


class Analyte(TimeStampedModel):
    class Category(models.TextChoices):
        VIRUS = "virus", "Virus"
        BACTERIA = "bacteria", "Bacteria"
        FUNGUS = "fungus", "Fungus"
        NEMATODE = "nematode", "Nematode"
        OTHER = "other", "Other"

    name = models.CharField(max_length=255)
    scientific_name = models.CharField(max_length=255, blank=True)
    category = models.CharField(
        max_length=20, choices=Category.choices, default=Category.OTHER, db_index=True
    )

    @property
    def display_name(self) -> str:
        return self.scientific_name or self.name

    def __str__(self):
        return self.display_name


class TestCatalog(TimeStampedModel):
    """A requestable analysis. `area` is free text classified at the boundary."""

    code = models.CharField(max_length=50, unique=True)
    name = models.CharField(max_length=255)
    area = models.CharField(max_length=100, blank=True)
    active = models.BooleanField(default=True)
    default_method = models.ForeignKey(
        Method,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="default_for_tests",
    )

    class Meta:
        verbose_name = "test catalog entry"
        verbose_name_plural = "test catalog"

    def __str__(self):
        return f"{self.code} - {self.name}"


# ============================================================
# Sample
# ============================================================
class Sample(WorkflowWriteGuardMixin, TimeStampedModel):
    class TakenBy(models.TextChoices):
        CLIENT = "client", "Client"
        LAB = "lab", "Laboratory"

    code = models.CharField(max_length=100, unique=True)
    client = models.ForeignKey(Client, on_delete=models.PROTECT, related_name="samples")
    project = models.ForeignKey(
        Project, on_delete=models.SET_NULL, null=True, blank=True, related_name="samples"
    )

    received_date = models.DateField()
    sla_type = models.CharField(
        max_length=20, choices=_choices(SLA_BUSINESS_DAYS), default=SLA_NORMAL
    )
    due_date = models.DateField(null=True, blank=True, db_index=True)
    sla_status = models.CharField(
        max_length=20, choices=_choices(SLA_STATUSES), default=SLA_ON_TIME, db_index=True
    )
    status = models.CharField(
        max_length=30,
        choices=_choices(SAMPLE_STATES),
        default=SAMPLE_INITIAL_STATE,
        db_index=True,
    )

    species = models.CharField(max_length=255)
    variety = models.CharField(max_length=255, blank=True)
    rootstock = models.CharField(max_length=255, blank=True)
    planting_year = models.PositiveIntegerField(null=True, blank=True)
    previous_crop = models.CharField(max_length=255, blank=True)
    next_crop = models.CharField(max_length=255, blank=True)
    fallow = models.BooleanField(null=True, blank=True)
    region = models.CharField(max_length=255, blank=True)
    locality = models.CharField(max_length=255, blank=True)
    taken_by = models.CharField(max_length=10, choices=TakenBy.choices, blank=True)
    sampling_method = models.CharField(max_length=255, blank=True)
    suspected_pathogen = models.CharField(max_length=255, blank=True)
    delivery_method = models.CharField(max_length=255, blank=True)

    client_notes = models.TextField(blank=True)
    reception_notes = models.TextField(blank=True)
    sampling_observations = models.TextField(blank=True)
    reception_observations = models.TextField(blank=True)

    class Meta:
        ordering = ["-received_date", "-id"]
        constraints = [
            models.CheckConstraint(name="sample_code_not_blank", condition=~Q(code="")),
        ]
        indexes = [
            models.Index(fields=["status", "sla_status"], name="sample_status_sla_idx"),
        ]

    def __str__(self):
        return self.code

    def save(self, *args, **kwargs):
        # due_date is always derived; never trust what is on the instance.
        self.sla_type = normalize_sla_type(self.sla_type)
        if self.received_date:
            self.due_date = compute_due_date(self.received_date, self.sla_type)
            self.sla_status = calculate_sla_status(
                self.due_date, self.status, today=timezone.localdate()
            )

        update_fields = kwargs.get("update_fields")
        if update_fields is not None and {"received_date", "sla_type"} & set(update_fields):
            kwargs["update_fields"] = set(update_fields) | {"due_date", "sla_status"}

        return super().save(*args, **kwargs)


class SampleTest(TimeStampedModel):
    """Requested analysis on a sample. Rows are never edited after creation."""

    sample = models.ForeignKey(Sample, on_delete=models.PROTECT, related_name="tests")
    test = models.ForeignKey(TestCatalog, on_delete=models.PROTECT, related_name="sample_tests")
    method = models.ForeignKey(
        Method, on_delete=models.PROTECT, null=True, blank=True, related_name="sample_tests"
    )

    class Meta:
        unique_together = ("sample", "test")

    def __str__(self):
        return f"{self.sample_id}:{self.test.code}"


class SampleUnit(TimeStampedModel):
    sample = models.ForeignKey(Sample, on_delete=models.PROTECT, related_name="units")
    code = models.CharField(max_length=100)
    label = models.CharField(max_length=255, blank=True)

    def __str__(self):
        return self.code


class UnitResult(TimeStampedModel):
    unit = models.ForeignKey(SampleUnit, on_delete=models.PROTECT, related_name="results")
    analyte = models.ForeignKey(
        Analyte, on_delete=models.SET_NULL, null=True, blank=True, related_name="unit_results"
    )
    test = models.ForeignKey(
        TestCatalog, on_delete=models.SET_NULL, null=True, blank=True, related_name="unit_results"
    )
    result_value = models.CharField(max_length=255, blank=True)
    result_flag = models.CharField(max_length=50, blank=True)
    notes = models.TextField(blank=True)


# ============================================================
# Result
# ============================================================
class Result(TimeStampedModel):
    class ResultType(models.TextChoices):
        POSITIVE = "positive", "Positive"
        NEGATIVE = "negative", "Negative"
        INCONCLUSIVE = "inconclusive", "Inconclusive"

    class Severity(models.TextChoices):
        LOW = "low", "Low"
        MODERATE = "moderate", "Moderate"
        HIGH = "high", "High"
        SEVERE = "severe", "Severe"

    class Confidence(models.TextChoices):
        LOW = "low", "Low"
        MEDIUM = "medium", "Medium"
        HIGH = "high", "High"

    sample = models.ForeignKey(Sample, on_delete=models.PROTECT, related_name="results")
    sample_test = models.ForeignKey(SampleTest, on_delete=models.PROTECT, related_name="results")

    status = models.CharField(
        max_length=20, choices=_choices(RESULT_STATES), default=PENDING, db_index=True
    )
    result_type = models.CharField(max_length=20, choices=ResultType.choices, blank=True)
    severity = models.CharField(max_length=20, choices=Severity.choices, blank=True)
    confidence = models.CharField(max_length=20, choices=Confidence.choices, blank=True)

    methodology = models.TextField(blank=True)
    diagnosis = models.TextField(blank=True)
    conclusion = models.TextField(blank=True)
    recommendations = models.TextField(blank=True)
    pathogen_identified = models.CharField(max_length=255, blank=True)
    pathogen_type = models.CharField(max_length=100, blank=True)
    findings = models.JSONField(null=True, blank=True)

    performed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="performed_results",
    )
    performed_at = models.DateTimeField(null=True, blank=True)
    validated_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="validated_results",
    )
    validated_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at", "-id"]
        constraints = [
            models.CheckConstraint(
                name="result_validator_pair",
                condition=(
                    Q(validated_by__isnull=True, validated_at__isnull=True)
                    | Q(validated_by__isnull=False, validated_at__isnull=False)
                ),
            ),
        ]
        indexes = [
            models.Index(fields=["sample", "status"], name="result_sample_status_idx"),
        ]

    def __str__(self):
        return f"Result {self.pk} ({self.status})"


# ============================================================
# Status Transition (append-only)
# ============================================================
class StatusTransition(models.Model):
    sample = models.ForeignKey(Sample, on_delete=models.PROTECT, related_name="transitions")
    from_status = models.CharField(max_length=30)
    to_status = models.CharField(max_length=30)
    by_user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="sample_transitions",
    )
    reason = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["created_at", "id"]
        indexes = [
            models.Index(fields=["sample", "created_at"], name="transition_sample_idx"),
        ]

    def save(self, *args, **kwargs):
        if self.pk is not None:
            raise PermissionDenied("Status transitions are append-only.")
        return super().save(*args, **kwargs)

    def __str__(self):
        return f"{self.sample_id}: {self.from_status} -> {self.to_status}"


# ============================================================
# Interpretation
# ============================================================
class InterpretationRule(TimeStampedModel):
    """
    Turns unit readings into advisory messages. Rules are deactivated,
    never deleted, so applied interpretations keep their source.
    """

    area = models.CharField(max_length=100)
    species = models.CharField(max_length=255, blank=True)
    crop_next = models.CharField(max_length=255, blank=True)
    analyte = models.CharField(max_length=255)
    comparator = models.CharField(max_length=5, choices=_choices(COMPARATORS))
    threshold = models.JSONField(default=dict)
    message = models.TextField()
    severity = models.CharField(max_length=20, choices=_choices(SEVERITIES), default="low")
    active = models.BooleanField(default=True, db_index=True)

    class Meta:
        ordering = ["-created_at", "-id"]

    def __str__(self):
        return f"{self.area}: {self.analyte} {self.comparator}"


class AppliedInterpretation(TimeStampedModel):
    sample = models.ForeignKey(Sample, on_delete=models.PROTECT, related_name="interpretations")
    rule = models.ForeignKey(
        InterpretationRule, on_delete=models.PROTECT, related_name="applications"
    )
    message = models.TextField()
    severity = models.CharField(max_length=20, choices=_choices(SEVERITIES), default="low")

    class Meta:
        ordering = ["-created_at", "-id"]

    def __str__(self):
        return f"{self.sample_id}: {self.message[:40]}"


# ============================================================
# Dependent rows (content managed elsewhere)
# ============================================================
class SampleFile(TimeStampedModel):
    sample = models.ForeignKey(Sample, on_delete=models.PROTECT, related_name="files")
    name = models.CharField(max_length=255)
    storage_path = models.CharField(max_length=500, blank=True)


class Report(TimeStampedModel):
    sample = models.ForeignKey(Sample, on_delete=models.PROTECT, related_name="reports")
    code = models.CharField(max_length=100)
    status = models.CharField(max_length=30, default="draft")
    generated_at = models.DateTimeField(null=True, blank=True)

    def __str__(self):
        return self.code


# ============================================================
# Roles / Audit
# ============================================================
class UserRole(TimeStampedModel):
    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="lab_role",
    )
    role = models.CharField(max_length=20, choices=_choices(ROLES), default=CONSUMER)

    def __str__(self):
        return f"{self.user} - {self.role}"


class AuditLog(TimeStampedModel):
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
    )
    action = models.CharField(max_length=255)
    details = models.JSONField(default=dict, blank=True)

    class Meta:
        ordering = ["-created_at", "-id"]

    def __str__(self):
        return self.action
