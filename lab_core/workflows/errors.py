# lab_core/workflows/errors.py

"""
Workflow enforcement exceptions.

Raised by the pure rule modules and the services; translated to HTTP
responses by lab_core.exceptions.api_exception_handler.

This module MUST remain free of Django imports.
"""

from typing import Iterable, List


class WorkflowError(Exception):
    """
    Base class for rule violations scoped to a single operation.
    """

    category = "workflow"
    default_message = "Workflow rule violated"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def as_dict(self) -> dict:
        return {"error": self.message}


# ---------------------------------------------------------------
# Authorization
# ---------------------------------------------------------------
class EditLocked(WorkflowError):
    """
    Raised when a sample edit touches fields that are locked because the
    sample already has validated results. Nothing is applied.
    """

    category = "authorization"
    default_message = "Sample has validated results; some fields are locked"

    def __init__(self, rejected_fields: Iterable[str], message: str | None = None):
        self.rejected_fields: List[str] = sorted(set(rejected_fields))
        super().__init__(
            message
            or f"{self.default_message}: {', '.join(self.rejected_fields)}"
        )

    def as_dict(self) -> dict:
        return {"error": self.message, "rejected_fields": self.rejected_fields}


class ResultLocked(WorkflowError):
    category = "authorization"
    default_message = "Validated results can only be modified by a validator"

    def __init__(self, fields: Iterable[str] = (), message: str | None = None):
        self.rejected_fields: List[str] = sorted(set(fields))
        super().__init__(message)

    def as_dict(self) -> dict:
        return {"error": self.message, "rejected_fields": self.rejected_fields}


class RoleNotPermitted(WorkflowError):
    category = "authorization"
    default_message = "Role not permitted for this operation"


# ---------------------------------------------------------------
# Validation
# ---------------------------------------------------------------
class InvalidTransition(WorkflowError):
    category = "validation"
    default_message = "Invalid status transition"


class RequiredFieldsMissing(WorkflowError):
    category = "validation"
    default_message = "Required fields are missing"

    def __init__(self, missing_fields: Iterable[str]):
        self.missing_fields: List[str] = list(missing_fields)
        super().__init__(
            f"{', '.join(self.missing_fields)} are required"
            if len(self.missing_fields) > 1
            else f"{''.join(self.missing_fields)} is required"
        )

    def as_dict(self) -> dict:
        return {"error": self.message, "missing_fields": self.missing_fields}


class FindingsIncomplete(WorkflowError):
    """
    The findings draft has no qualifying rows for its analysis area.
    """

    category = "validation"

    def __init__(self, area: str):
        self.area = area
        super().__init__(f"Findings for area '{area}' are incomplete")

    def as_dict(self) -> dict:
        return {"error": self.message, "area": self.area}


class FindingsInvalid(WorkflowError):
    category = "validation"
    default_message = "Findings payload does not match its declared type"

    def __init__(self, problems: Iterable[str]):
        self.problems: List[str] = list(problems)
        super().__init__()

    def as_dict(self) -> dict:
        return {"error": self.message, "problems": self.problems}


# ---------------------------------------------------------------
# Consistency
# ---------------------------------------------------------------
class ConcurrentEditConflict(WorkflowError):
    category = "conflict"
    default_message = "The record changed concurrently; retry the request"


class DerivedFieldSupplied(WorkflowError):
    """
    The client supplied a value the workflow derives itself
    (due_date, validated_at, a first validated_by).
    """

    category = "validation"

    def __init__(self, fields: Iterable[str], message: str | None = None):
        self.fields: List[str] = sorted(set(fields))
        super().__init__(
            message or f"Server-derived field(s) cannot be set: {', '.join(self.fields)}"
        )

    def as_dict(self) -> dict:
        return {"error": self.message, "fields": self.fields}


class SampleTestConflict(WorkflowError):
    """
    A requested analysis is already on the sample, or has results and
    cannot be removed.
    """

    category = "conflict"
    default_message = "Requested test cannot be changed"
