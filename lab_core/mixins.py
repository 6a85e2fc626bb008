# lab_core/mixins.py
from __future__ import annotations

from .signals import set_current_user


class CurrentUserViewMixin:
    """
    Publishes the DRF-authenticated user (JWT, basic, session) to the
    audit signals for the duration of the request.
    """

    def initial(self, request, *args, **kwargs):
        super().initial(request, *args, **kwargs)
        user = getattr(request, "user", None)
        set_current_user(user if user is not None and user.is_authenticated else None)
