# lab_core/tests/test_results_service.py
from __future__ import annotations

import pytest

from lab_core.findings.lookups import load_lookups
from lab_core.models import Result
from lab_core.services.results import (
    _update_result_once,
    create_result,
    delete_result,
    prepare_findings,
    update_result,
    validate_result,
)
from lab_core.workflows.errors import (
    DerivedFieldSupplied,
    FindingsIncomplete,
    FindingsInvalid,
    InvalidTransition,
    ResultLocked,
    RoleNotPermitted,
)


@pytest.fixture
def virology_test(sample, make_sample_test):
    return make_sample_test(sample, "virology")


# ---------------------------------------------------------------
# Lookups / findings
# ---------------------------------------------------------------
@pytest.mark.django_db
def test_load_lookups_resolves_only_referenced_rows(analytes, method_pcr):
    draft = {
        "tests": [
            {"method": str(method_pcr.pk), "virus": analytes["grapevine_virus"].pk, "result": "positive"},
            {"method": "not-an-id", "virus": "GFLV", "result": "negative"},
        ]
    }
    lookups = load_lookups("Virología", draft)

    assert lookups.methods == {str(method_pcr.pk): "PCR convencional"}
    assert lookups.analytes == {
        "virus": {str(analytes["grapevine_virus"].pk): "Grapevine leafroll-associated virus 3"}
    }


@pytest.mark.django_db
def test_prepare_findings_resolves_from_database(analytes, method_elisa):
    payload = prepare_findings(
        "Virología",
        {"tests": [{"identification": "P1", "method": method_elisa.pk, "virus": analytes["grapevine_virus"].pk, "result": "negative"}]},
    )
    assert payload["tests"][0]["method"] == "ELISA DAS"
    assert payload["tests"][0]["virus"] == "Grapevine leafroll-associated virus 3"


@pytest.mark.django_db
def test_prepare_findings_incomplete_for_known_area():
    with pytest.raises(FindingsIncomplete) as exc:
        prepare_findings("Fitopatología", {"tests": [{"microorganism": "x", "dilutions": {}}]})
    assert exc.value.area == "fitopatologia"


@pytest.mark.django_db
def test_prepare_findings_blank_is_none():
    assert prepare_findings("Virología", None) is None
    assert prepare_findings("Virología", "  ") is None


# ---------------------------------------------------------------
# Create
# ---------------------------------------------------------------
@pytest.mark.django_db
def test_create_result_stamps_performer(sample, virology_test, user_common):
    result = create_result(
        data={"sample": sample, "sample_test": virology_test, "diagnosis": "Sin virus"},
        user=user_common,
    )

    assert result.status == "pending"
    assert result.performed_by == user_common
    assert result.performed_at is not None
    assert result.validated_by is None
    assert result.validated_at is None


@pytest.mark.django_db
def test_validator_can_create_validated_result(sample, virology_test, user_validator):
    result = create_result(
        data={"sample": sample, "sample_test": virology_test, "status": "validated"},
        user=user_validator,
    )

    assert result.validated_by == user_validator
    assert result.validated_at is not None


@pytest.mark.django_db
def test_create_result_rejects_client_validator(sample, virology_test, user_validator):
    with pytest.raises(DerivedFieldSupplied):
        create_result(
            data={"sample": sample, "sample_test": virology_test, "validated_by": user_validator},
            user=user_validator,
        )


@pytest.mark.django_db
def test_create_result_encodes_findings(sample, virology_test, user_common, method_elisa, analytes):
    result = create_result(
        data={
            "sample": sample,
            "sample_test": virology_test,
            "findings": {
                "tests": [
                    {"identification": "P1", "method": method_elisa.pk, "virus": analytes["grapevine_virus"].pk, "result": "positive"}
                ]
            },
        },
        user=user_common,
    )

    result.refresh_from_db()
    assert result.findings["type"] == "virologia"
    assert result.findings["tests"][0]["method"] == "ELISA DAS"


# ---------------------------------------------------------------
# Update / validate
# ---------------------------------------------------------------
@pytest.mark.django_db
def test_validate_then_clear(sample, make_result, user_validator):
    result = make_result(sample, status="completed")

    result = validate_result(result_id=result.pk, user=user_validator)
    assert result.status == "validated"
    assert result.validated_by == user_validator
    assert result.validated_at is not None

    result = update_result(result_id=result.pk, patch={"validated_by": None}, user=user_validator)
    result.refresh_from_db()
    assert result.status == "completed"
    assert result.validated_by is None
    assert result.validated_at is None


@pytest.mark.django_db
def test_validate_twice_is_rejected(sample, make_result, user_validator):
    result = make_result(sample, status="validated", validated_by=user_validator)
    with pytest.raises(InvalidTransition):
        validate_result(result_id=result.pk, user=user_validator)


@pytest.mark.django_db
def test_common_user_cannot_validate(sample, make_result, user_common):
    result = make_result(sample, status="completed")
    with pytest.raises(RoleNotPermitted):
        validate_result(result_id=result.pk, user=user_common)


@pytest.mark.django_db
def test_validated_result_is_locked_for_common_users(sample, make_result, user_validator, user_common):
    result = make_result(sample, status="validated", validated_by=user_validator)

    with pytest.raises(ResultLocked) as exc:
        update_result(result_id=result.pk, patch={"conclusion": "changed"}, user=user_common)
    assert exc.value.rejected_fields == ["conclusion"]

    result = update_result(result_id=result.pk, patch={"conclusion": "changed"}, user=user_validator)
    assert result.conclusion == "changed"
    assert result.status == "validated"


@pytest.mark.django_db
def test_update_findings_goes_through_registry(sample, make_result, user_common):
    result = make_result(sample, area="nematology")

    result = update_result(
        result_id=result.pk,
        patch={"findings": {"result_type": "negative", "nematodes": [{"quantity": "80"}]}},
        user=user_common,
    )
    assert result.findings["type"] == "nematologia_negative"
    assert result.findings["nematodes"][0]["quantity"] == "80"


# ---------------------------------------------------------------
# Delete
# ---------------------------------------------------------------
@pytest.mark.django_db
def test_delete_rules(sample, make_result, user_validator, user_common):
    validated = make_result(sample, status="validated", validated_by=user_validator)

    with pytest.raises(ResultLocked):
        delete_result(result_id=validated.pk, user=user_common)

    delete_result(result_id=validated.pk, user=user_validator)
    assert not Result.objects.filter(pk=validated.pk).exists()

    pending = make_result(sample)
    delete_result(result_id=pending.pk, user=user_common)
    assert not Result.objects.filter(pk=pending.pk).exists()


# ---------------------------------------------------------------
# Nematology result type
# ---------------------------------------------------------------
@pytest.mark.django_db
def test_negative_result_type_encodes_nameless_count(sample, user_common, make_sample_test):
    sample_test = make_sample_test(sample, "nematology")
    result = create_result(
        data={
            "sample": sample,
            "sample_test": sample_test,
            "result_type": "negative",
            "findings": {"nematodes": [{"quantity": "12"}]},
        },
        user=user_common,
    )

    assert result.findings == {
        "type": "nematologia_negative",
        "nematodes": [{"name": "Nematodos no fitoparásitos (benéficos)", "quantity": "12"}],
    }


@pytest.mark.django_db
def test_negative_result_type_keeps_named_row_negative(sample, user_common, make_sample_test):
    sample_test = make_sample_test(sample, "nematology")
    result = create_result(
        data={
            "sample": sample,
            "sample_test": sample_test,
            "result_type": "negative",
            "findings": {"nematodes": [{"name": "Xiphinema", "quantity": "3"}]},
        },
        user=user_common,
    )
    assert result.findings["type"] == "nematologia_negative"


@pytest.mark.django_db
def test_findings_tag_conflicting_with_result_type(sample, user_common, make_sample_test):
    sample_test = make_sample_test(sample, "nematology")
    with pytest.raises(FindingsInvalid):
        create_result(
            data={
                "sample": sample,
                "sample_test": sample_test,
                "result_type": "positive",
                "findings": {"result_type": "negative", "nematodes": [{"quantity": "12"}]},
            },
            user=user_common,
        )
    assert not Result.objects.exists()


@pytest.mark.django_db
def test_update_uses_stored_result_type(sample, make_result, user_common):
    result = make_result(sample, area="nematology", result_type="negative")

    result = update_result(
        result_id=result.pk,
        patch={"findings": {"nematodes": [{"quantity": "40"}]}},
        user=user_common,
    )
    assert result.findings["type"] == "nematologia_negative"


@pytest.mark.django_db
def test_result_type_change_must_match_stored_findings(sample, make_result, user_common):
    result = make_result(
        sample,
        area="nematology",
        result_type="negative",
        findings={"type": "nematologia_negative", "nematodes": [{"name": "x", "quantity": "1"}]},
    )

    with pytest.raises(FindingsInvalid):
        update_result(result_id=result.pk, patch={"result_type": "positive"}, user=user_common)

    result.refresh_from_db()
    assert result.result_type == "negative"


# ---------------------------------------------------------------
# Validator pair stability
# ---------------------------------------------------------------
@pytest.mark.django_db
def test_resending_validator_keeps_validated_at(sample, make_result, user_validator):
    result = make_result(sample, status="validated", validated_by=user_validator)
    stamped = result.validated_at

    result = update_result(
        result_id=result.pk,
        patch={"validated_by": user_validator, "diagnosis": "typo fix"},
        user=user_validator,
    )
    result.refresh_from_db()

    assert result.diagnosis == "typo fix"
    assert result.validated_by == user_validator
    assert result.validated_at == stamped


@pytest.mark.django_db
def test_validate_rechecks_status_under_lock(sample, make_result, user_validator):
    result = make_result(sample, status="validated", validated_by=user_validator)
    stamped = result.validated_at

    with pytest.raises(InvalidTransition):
        _update_result_once(
            result_id=result.pk,
            patch={"status": "validated"},
            user=user_validator,
            expect_not_validated=True,
        )

    result.refresh_from_db()
    assert result.validated_at == stamped
