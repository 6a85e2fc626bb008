# lab_core/admin.py

from django.contrib import admin

from .models import (
    Analyte,
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
    StatusTransition,
    TestCatalog,
    UserRole,
)


# =============================================================
# Status transitions (READ-ONLY AUDIT TRAIL)
# =============================================================

@admin.register(StatusTransition)
class StatusTransitionAdmin(admin.ModelAdmin):
    list_display = ("sample", "from_status", "to_status", "by_user", "created_at")
    list_filter = ("from_status", "to_status")
    search_fields = ("sample__code", "by_user__username", "reason")
    ordering = ("-created_at",)

    readonly_fields = [f.name for f in StatusTransition._meta.fields]

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


# =============================================================
# Samples
# =============================================================

class SampleTestInline(admin.TabularInline):
    model = SampleTest
    extra = 0
    readonly_fields = ("test", "method")
    can_delete = False


@admin.register(Sample)
class SampleAdmin(admin.ModelAdmin):
    list_display = ("code", "client", "species", "status", "sla_type", "due_date", "sla_status")
    list_filter = ("status", "sla_status", "sla_type")
    search_fields = ("code", "client__name", "species")
    date_hierarchy = "received_date"
    # Status and derived SLA columns change only through the workflow
    readonly_fields = ("status", "due_date", "sla_status", "created_at", "updated_at")
    inlines = [SampleTestInline]


@admin.register(Result)
class ResultAdmin(admin.ModelAdmin):
    list_display = ("id", "sample", "sample_test", "status", "result_type", "validated_by", "validated_at")
    list_filter = ("status", "result_type")
    search_fields = ("sample__code",)
    readonly_fields = ("status", "performed_by", "performed_at", "validated_by", "validated_at")


# =============================================================
# Interpretation
# =============================================================

@admin.register(InterpretationRule)
class InterpretationRuleAdmin(admin.ModelAdmin):
    list_display = ("id", "area", "analyte", "comparator", "severity", "species", "crop_next", "active")
    list_filter = ("active", "area", "severity")
    search_fields = ("analyte", "message")


@admin.register(AppliedInterpretation)
class AppliedInterpretationAdmin(admin.ModelAdmin):
    list_display = ("sample", "rule", "severity", "created_at")
    list_filter = ("severity",)
    search_fields = ("sample__code", "message")
    readonly_fields = ("sample", "rule", "message", "severity", "created_at", "updated_at")

    def has_add_permission(self, request):
        return False


# =============================================================
# Reference data
# =============================================================

@admin.register(Client)
class ClientAdmin(admin.ModelAdmin):
    list_display = ("name", "rut", "contact_email")
    search_fields = ("name", "rut")


@admin.register(Project)
class ProjectAdmin(admin.ModelAdmin):
    list_display = ("code", "name")
    search_fields = ("code", "name")


@admin.register(TestCatalog)
class TestCatalogAdmin(admin.ModelAdmin):
    list_display = ("code", "name", "area", "default_method", "active")
    list_filter = ("active", "area")
    search_fields = ("code", "name")


@admin.register(Method)
class MethodAdmin(admin.ModelAdmin):
    list_display = ("code", "name", "matrix")
    search_fields = ("code", "name")


@admin.register(Analyte)
class AnalyteAdmin(admin.ModelAdmin):
    list_display = ("name", "scientific_name", "category")
    list_filter = ("category",)
    search_fields = ("name", "scientific_name")


@admin.register(Report)
class ReportAdmin(admin.ModelAdmin):
    list_display = ("code", "sample", "status", "generated_at")


@admin.register(UserRole)
class UserRoleAdmin(admin.ModelAdmin):
    list_display = ("user", "role")
    list_filter = ("role",)


@admin.register(AuditLog)
class AuditLogAdmin(admin.ModelAdmin):
    list_display = ("action", "user", "created_at")
    search_fields = ("action",)
    readonly_fields = ("user", "action", "details", "created_at", "updated_at")
