# lab_core/permissions.py
from __future__ import annotations

from rest_framework.permissions import SAFE_METHODS, BasePermission

from lab_core.models import UserRole
from lab_core.workflows import ADMIN, CONSUMER, is_editor, is_validator, normalize_role


# ------------------------------------------------------------------
# Role resolution
# ------------------------------------------------------------------
def role_for_user(user) -> str:
    """
    Effective lab role for a user.

    Superusers are admins; users without a UserRole row are consumers.
    """
    if not user or not getattr(user, "is_authenticated", False):
        return CONSUMER
    if user.is_superuser:
        return ADMIN

    role = UserRole.objects.filter(user=user).values_list("role", flat=True).first()
    return normalize_role(role)


# ------------------------------------------------------------------
# Permission class
# ------------------------------------------------------------------
class IsEditorOrReadOnly(BasePermission):
    """
    Read: any authenticated user
    Write: admin, validador or comun

    Finer rules (validated locks, purge, validation) are enforced by the
    services and surface as 403 through the exception handler.
    """

    message = "Your role does not allow changes to laboratory records."

    def has_permission(self, request, view):
        user = getattr(request, "user", None)
        if not user or not user.is_authenticated:
            return False

        if request.method in SAFE_METHODS:
            return True

        return is_editor(role_for_user(user))


class IsValidatorOrReadOnly(BasePermission):
    """
    Read: any authenticated user
    Write: admin or validador
    """

    message = "Only validators can change laboratory configuration."

    def has_permission(self, request, view):
        user = getattr(request, "user", None)
        if not user or not user.is_authenticated:
            return False

        if request.method in SAFE_METHODS:
            return True

        return is_validator(role_for_user(user))
