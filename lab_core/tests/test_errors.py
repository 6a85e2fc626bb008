# lab_core/tests/test_errors.py
from __future__ import annotations

import pytest
from django.db import DatabaseError, IntegrityError, OperationalError

from lab_core.exceptions import api_exception_handler
from lab_core.services.samples import run_with_conflict_retry
from lab_core.workflows.errors import ConcurrentEditConflict, EditLocked


def _db_error(cls=DatabaseError, sqlstate=None, message="database error"):
    exc = cls(message)
    if sqlstate is not None:
        exc.sqlstate = sqlstate
    return exc


class _Flaky:
    """Raises the queued errors in order, then returns 'done'."""

    __name__ = "flaky"

    def __init__(self, *errors):
        self.errors = list(errors)
        self.calls = 0

    def __call__(self, *args, **kwargs):
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return "done"


# ---------------------------------------------------------------
# Conflict retry
# ---------------------------------------------------------------
@pytest.mark.parametrize("sqlstate", ["40001", "40P01"])
def test_transient_conflict_is_retried_once(sqlstate):
    fn = _Flaky(_db_error(sqlstate=sqlstate))
    assert run_with_conflict_retry(fn) == "done"
    assert fn.calls == 2


def test_second_conflict_becomes_concurrent_edit_conflict():
    fn = _Flaky(_db_error(sqlstate="40001"), _db_error(sqlstate="40P01"))
    with pytest.raises(ConcurrentEditConflict):
        run_with_conflict_retry(fn)
    assert fn.calls == 2


def test_other_database_errors_are_not_retried():
    error = _db_error(IntegrityError, sqlstate="23505")
    fn = _Flaky(error)
    with pytest.raises(IntegrityError):
        run_with_conflict_retry(fn)
    assert fn.calls == 1


def test_sqlstate_is_read_from_the_driver_cause():
    cause = Exception("could not serialize access")
    cause.sqlstate = "40001"
    wrapped = OperationalError("could not serialize access")
    wrapped.__cause__ = cause

    fn = _Flaky(wrapped)
    assert run_with_conflict_retry(fn) == "done"


# ---------------------------------------------------------------
# HTTP mapping
# ---------------------------------------------------------------
def test_statement_timeout_is_retryable_503():
    cause = Exception("canceling statement due to statement timeout")
    cause.sqlstate = "57014"
    exc = OperationalError("canceling statement due to statement timeout")
    exc.__cause__ = cause

    response = api_exception_handler(exc, {})

    assert response.status_code == 503
    assert response.data == {"error": "Database timeout", "retryable": True}


def test_lost_connection_is_retryable_503():
    response = api_exception_handler(OperationalError("server closed the connection"), {})

    assert response.status_code == 503
    assert response.data == {"error": "Database unavailable", "retryable": True}


def test_integrity_error_passes_database_text():
    message = 'duplicate key value violates unique constraint "lab_core_sample_code_key"'
    response = api_exception_handler(IntegrityError(message), {})

    assert response.status_code == 409
    assert response.data == {"error": message}


def test_concurrent_edit_conflict_is_409():
    response = api_exception_handler(ConcurrentEditConflict(), {})

    assert response.status_code == 409
    assert response.data == {"error": "The record changed concurrently; retry the request"}


def test_edit_locked_lists_rejected_fields():
    response = api_exception_handler(EditLocked(["species", "code"]), {})

    assert response.status_code == 403
    assert response.data["rejected_fields"] == ["code", "species"]
