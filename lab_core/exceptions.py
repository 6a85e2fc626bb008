# lab_core/exceptions.py
from __future__ import annotations

import logging
from typing import Any

from django.core.exceptions import ObjectDoesNotExist
from django.db import IntegrityError, OperationalError
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler as drf_exception_handler

from lab_core.workflows.errors import WorkflowError

logger = logging.getLogger(__name__)


CATEGORY_STATUS = {
    "authorization": status.HTTP_403_FORBIDDEN,
    "validation": status.HTTP_400_BAD_REQUEST,
    "conflict": status.HTTP_409_CONFLICT,
    "workflow": status.HTTP_400_BAD_REQUEST,
}

QUERY_CANCELED = "57014"


def error_body(message: str, **details: Any) -> dict[str, Any]:
    """
    Wire shape for every error: {"error": <message>, ...details}.
    """
    body: dict[str, Any] = {"error": message}
    body.update({k: v for k, v in details.items() if v is not None})
    return body


def _workflow_response(exc: WorkflowError) -> Response:
    http_status = CATEGORY_STATUS.get(exc.category, status.HTTP_400_BAD_REQUEST)
    return Response(exc.as_dict(), status=http_status)


def _database_response(exc: Exception) -> Response | None:
    if isinstance(exc, IntegrityError):
        # Duplicate codes, dangling references: pass the database text through.
        return Response(error_body(str(exc)), status=status.HTTP_409_CONFLICT)

    if isinstance(exc, OperationalError):
        cause = exc.__cause__
        code = getattr(cause, "sqlstate", None) or getattr(cause, "pgcode", None)
        message = "Database timeout" if code == QUERY_CANCELED else "Database unavailable"
        logger.warning("%s: %s", message, exc)
        return Response(
            error_body(message, retryable=True),
            status=status.HTTP_503_SERVICE_UNAVAILABLE,
        )

    return None


def api_exception_handler(exc: Exception, context: dict[str, Any]):
    if isinstance(exc, WorkflowError):
        return _workflow_response(exc)

    if isinstance(exc, ObjectDoesNotExist):
        return Response(error_body("Not found."), status=status.HTTP_404_NOT_FOUND)

    db_response = _database_response(exc)
    if db_response is not None:
        return db_response

    response = drf_exception_handler(exc, context)

    if response is None:
        view = context.get("view")
        logger.exception("Unhandled error in %s", view.__class__.__name__ if view else "view")
        return Response(
            error_body("Unexpected server error."),
            status=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    data = response.data
    if isinstance(data, dict) and "detail" in data:
        rest = {k: v for k, v in data.items() if k != "detail"}
        body = error_body(str(data["detail"]), details=rest or None)
    else:
        body = error_body("Request failed.", details=data)

    return Response(body, status=response.status_code, headers=response.headers)
