"""Tests for plan, permission and usage models."""

import pytest
from pydantic import ValidationError

from agenda.models.plan import (
    FEATURE_KEYS,
    PlanData,
    PlanPermissions,
    PlanUsage,
    is_known_feature,
)


def test_absent_and_null_permissions_are_denied():
    permissions = PlanPermissions.model_validate({"dashboard": True, "reports": None})
    assert permissions.get("dashboard") is True
    assert permissions.get("reports") is False
    assert permissions.get("financial") is False


def test_permissions_accept_wire_and_attribute_names():
    permissions = PlanPermissions.model_validate({"pointsProgram": True})
    assert permissions.get("pointsProgram") is True
    assert permissions.get("points_program") is True
    assert permissions.as_dict()["pointsProgram"] is True


def test_unknown_feature_is_denied_and_ignored():
    permissions = PlanPermissions.model_validate({"teleport": True, "dashboard": True})
    assert permissions.get("teleport") is False
    assert not is_known_feature("teleport")
    assert "teleport" not in permissions.as_dict()


def test_allow_all_and_deny_all_cover_every_feature():
    allowed = PlanPermissions.allow_all()
    denied = PlanPermissions.deny_all()
    assert all(allowed.get(key) for key in FEATURE_KEYS)
    assert not any(denied.get(key) for key in FEATURE_KEYS)
    assert set(allowed.as_dict()) == set(FEATURE_KEYS)


def test_plan_data_parses_camel_case_payload():
    data = PlanData.model_validate({
        "plan": {
            "id": 3,
            "name": "Professional",
            "maxProfessionals": 5,
            "permissions": {"reports": True},
        },
        "usage": {"professionalsCount": 6, "professionalsLimit": 5},
    })
    assert data.plan.max_professionals == 5
    assert data.plan.permissions.get("reports") is True
    # Usage above the limit is legitimate (plan downgrades)
    assert data.usage.professionals_count == 6


def test_plan_data_usage_is_optional():
    data = PlanData.model_validate({"plan": {"name": "Basic"}})
    assert data.usage is None
    assert data.plan.permissions == PlanPermissions.deny_all()


def test_usage_rejects_negative_counts():
    with pytest.raises(ValidationError):
        PlanUsage(professionals_count=-1, professionals_limit=1)


def test_models_are_frozen():
    usage = PlanUsage(professionals_count=1, professionals_limit=2)
    with pytest.raises(ValidationError):
        usage.professionals_count = 5
