# lab_core/signals.py
from __future__ import annotations

from threading import local

from django.db.models.signals import post_delete, post_save
from django.dispatch import receiver

from lab_core.models import AuditLog, Result, Sample, StatusTransition, UserRole

# ===============================================================
# Thread-local user storage
# ===============================================================
_state = local()


def set_current_user(user):
    _state.user = user


def get_current_user():
    return getattr(_state, "user", None)


AUDITED_MODELS = {Sample, Result, UserRole}


def _log(action: str, instance, details: dict | None = None, user=None):
    user = user or get_current_user()

    AuditLog.objects.create(
        user=user if user is not None and user.is_authenticated else None,
        action=action,
        details=details or {
            "model": instance.__class__.__name__,
            "object_id": instance.pk,
        },
    )


# ===============================================================
# CREATE / UPDATE / DELETE audit
# ===============================================================
@receiver(post_save)
def audit_create_update(sender, instance, created, **kwargs):
    if sender not in AUDITED_MODELS:
        return
    _log("CREATE" if created else "UPDATE", instance)


@receiver(post_delete)
def audit_delete(sender, instance, **kwargs):
    if sender not in AUDITED_MODELS:
        return
    _log("DELETE", instance)


# ===============================================================
# Sample status changes
# ===============================================================
@receiver(post_save, sender=StatusTransition)
def audit_status_transition(sender, instance: StatusTransition, created: bool, **kwargs):
    if not created:
        return

    _log(
        f"SAMPLE {instance.sample_id}: {instance.from_status} -> {instance.to_status}",
        instance,
        details={
            "sample_id": instance.sample_id,
            "from": instance.from_status,
            "to": instance.to_status,
            "reason": instance.reason,
        },
        user=instance.by_user,
    )
