# lab_core/tests/conftest.py

from __future__ import annotations

import uuid
from datetime import date
from typing import Any, Callable, Dict, Optional

import pytest
from django.contrib.auth import get_user_model
from django.utils import timezone
from rest_framework.test import APIClient

from lab_core.models import (
    Analyte,
    Client,
    Method,
    Result,
    Sample,
    SampleTest,
    TestCatalog,
    UserRole,
)


def _rand(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:10]}"


# ---------------------------------------------------------------
# Users
# ---------------------------------------------------------------
def _user_with_role(username: str, role: Optional[str], **extra):
    User = get_user_model()
    user = User.objects.create_user(username=username, password="pass123", **extra)
    if role:
        UserRole.objects.create(user=user, role=role)
    return user


@pytest.fixture
def user_admin(db):
    return _user_with_role("admin", None, is_staff=True, is_superuser=True)


@pytest.fixture
def user_validator(db):
    return _user_with_role("validator", "validador")


@pytest.fixture
def user_common(db):
    return _user_with_role("analyst", "comun")


@pytest.fixture
def user_consumer(db):
    return _user_with_role("viewer", "consumidor")


@pytest.fixture
def api_client() -> APIClient:
    return APIClient()


@pytest.fixture
def client_as(api_client) -> Callable[[Any], APIClient]:
    def _as(user) -> APIClient:
        api_client.force_authenticate(user=user)
        return api_client

    return _as


# ---------------------------------------------------------------
# Reference data
# ---------------------------------------------------------------
@pytest.fixture
def lab_client(db) -> Client:
    return Client.objects.create(name="Viña Los Robles", rut="76.123.456-7")


@pytest.fixture
def method_elisa(db) -> Method:
    return Method.objects.create(code="ELISA", name="ELISA DAS")


@pytest.fixture
def method_pcr(db) -> Method:
    return Method.objects.create(code="PCR", name="PCR convencional")


@pytest.fixture
def analytes(db) -> Dict[str, Analyte]:
    return {
        "grapevine_virus": Analyte.objects.create(
            name="GLRaV-3",
            scientific_name="Grapevine leafroll-associated virus 3",
            category=Analyte.Category.VIRUS,
        ),
        "agrobacterium": Analyte.objects.create(
            name="Agrobacterium",
            scientific_name="Agrobacterium tumefaciens",
            category=Analyte.Category.BACTERIA,
        ),
        "botrytis": Analyte.objects.create(
            name="Botrytis",
            scientific_name="Botrytis cinerea",
            category=Analyte.Category.FUNGUS,
        ),
        "xiphinema": Analyte.objects.create(
            name="Xiphinema index",
            category=Analyte.Category.NEMATODE,
        ),
    }


@pytest.fixture
def catalog(db, method_elisa) -> Dict[str, TestCatalog]:
    entries = {
        "virology": ("VIR-01", "Virus panel", "Virología"),
        "bacteriology": ("BAC-01", "Bacteria panel", "Bacteriología"),
        "phytopathology": ("FIT-01", "Fungal isolation", "Fitopatología"),
        "nematology": ("NEM-01", "Nematode count", "Nematología"),
        "early_detection": ("DP-01", "Early detection", "Detección precoz"),
        "other": ("GEN-01", "Soil chemistry", "Química de suelos"),
    }
    return {
        key: TestCatalog.objects.create(
            code=code,
            name=name,
            area=area,
            default_method=method_elisa if key == "virology" else None,
        )
        for key, (code, name, area) in entries.items()
    }


# ---------------------------------------------------------------
# Samples / results
# ---------------------------------------------------------------
@pytest.fixture
def make_sample(db, lab_client) -> Callable[..., Sample]:
    def _make(**overrides) -> Sample:
        values = {
            "code": _rand("S"),
            "client": lab_client,
            "received_date": date(2024, 1, 1),
            "sla_type": "normal",
            "species": "Vitis vinifera",
        }
        values.update(overrides)
        return Sample.objects.create(**values)

    return _make


@pytest.fixture
def sample(make_sample) -> Sample:
    return make_sample()


@pytest.fixture
def make_sample_test(catalog) -> Callable[..., SampleTest]:
    def _make(sample: Sample, area: str = "virology") -> SampleTest:
        test = catalog[area]
        return SampleTest.objects.create(sample=sample, test=test, method=test.default_method)

    return _make


@pytest.fixture
def make_result(catalog, make_sample_test) -> Callable[..., Result]:
    def _make(sample: Sample, status: str = "pending", validated_by=None, area: str = "virology", **extra) -> Result:
        sample_test = SampleTest.objects.filter(sample=sample, test=catalog[area]).first()
        if sample_test is None:
            sample_test = make_sample_test(sample, area)
        return Result.objects.create(
            sample=sample,
            sample_test=sample_test,
            status=status,
            validated_by=validated_by,
            validated_at=timezone.now() if validated_by else None,
            **extra,
        )

    return _make
