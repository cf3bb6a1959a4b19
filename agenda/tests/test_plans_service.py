"""Tests for plan resolution and server-side enforcement."""

import pytest
from sqlalchemy import insert

from agenda.core.database import get_db_session, plans
from agenda.core.errors import (
    NotFoundError,
    PermissionDeniedError,
    PlanNotLoadedError,
    ProfessionalLimitError,
)
from agenda.core.metrics import plan_access_denied_total
from agenda.features.plans.service import (
    DEFAULT_PLANS,
    assign_plan,
    build_plan_data,
    check_permission,
    check_professionals_limit,
    create_company,
    load_company_plan,
    require_company_plan,
    seed_plans,
)
from agenda.features.professionals.service import add_professional, list_professionals
from agenda.models.appointment import ProfessionalCreate
from agenda.models.plan import CompanyCreate


def _insert_raw_plan(**values) -> int:
    with get_db_session() as session:
        result = session.execute(insert(plans).values(**values))
        return result.inserted_primary_key[0]


def test_seed_plans_is_idempotent():
    first = seed_plans()
    second = seed_plans()
    assert first == second
    assert set(first) == set(DEFAULT_PLANS)


def test_company_without_plan_is_not_loaded():
    company_id = create_company(CompanyCreate(name="No plan"))
    assert load_company_plan(company_id) is None
    with pytest.raises(PlanNotLoadedError):
        require_company_plan(company_id)
    assert plan_access_denied_total.value({"reason": "plan_not_loaded"}) == 1


def test_unknown_company_is_not_loaded():
    assert load_company_plan(9999) is None


def test_legacy_plan_without_permissions_allows_everything():
    plan_id = _insert_raw_plan(name="Legacy", max_professionals=None, permissions=None)
    company_id = create_company(CompanyCreate(name="Old timer", plan_id=plan_id))

    company_plan = load_company_plan(company_id)
    assert company_plan.permissions.get("financial") is True
    assert company_plan.permissions.get("pointsProgram") is True
    # Missing ceiling falls back to a single professional
    assert company_plan.max_professionals == 1


def test_check_permission_names_plan_and_feature(company_factory):
    company_plan = load_company_plan(company_factory("Basic"))

    check_permission(company_plan, "appointments")
    with pytest.raises(PermissionDeniedError) as exc_info:
        check_permission(company_plan, "financial")

    err = exc_info.value
    assert err.status_code == 403
    assert err.code == "plan_permission_denied"
    assert err.required_permission == "financial"
    assert '"Basic"' in err.message
    assert '"Financial"' in err.message


def test_limit_reached_at_equality(company_factory):
    company_id = company_factory("Basic")
    company_plan = load_company_plan(company_id)

    assert check_professionals_limit(company_plan) == 0
    add_professional(company_id, ProfessionalCreate(name="Ana"))

    with pytest.raises(ProfessionalLimitError) as exc_info:
        check_professionals_limit(company_plan)
    assert exc_info.value.limit == 1
    assert exc_info.value.current == 1


def test_add_professional_enforces_limit(company_factory):
    company_id = company_factory("Basic")
    add_professional(company_id, ProfessionalCreate(name="Ana"))

    with pytest.raises(ProfessionalLimitError):
        add_professional(company_id, ProfessionalCreate(name="Bruno"))
    assert [p.name for p in list_professionals(company_id)] == ["Ana"]


def test_build_plan_data_reports_usage(company_factory):
    company_id = company_factory("Professional")
    add_professional(company_id, ProfessionalCreate(name="Ana"))
    add_professional(company_id, ProfessionalCreate(name="Bruno"))

    data = build_plan_data(company_id)
    assert data.plan.name == "Professional"
    assert data.plan.max_professionals == 5
    assert data.usage.professionals_count == 2
    assert data.usage.professionals_limit == 5
    assert data.plan.permissions.get("reports") is True
    assert data.plan.permissions.get("inventory") is False


def test_downgrade_leaves_company_over_limit(company_factory, seeded_plans):
    company_id = company_factory("Professional")
    for name in ("Ana", "Bruno", "Carla"):
        add_professional(company_id, ProfessionalCreate(name=name))

    assign_plan(company_id, seeded_plans["Basic"])

    data = build_plan_data(company_id)
    assert data.usage.professionals_count == 3
    assert data.usage.professionals_limit == 1
    with pytest.raises(ProfessionalLimitError):
        add_professional(company_id, ProfessionalCreate(name="Diego"))


def test_assign_unknown_plan_fails(company_factory):
    company_id = company_factory("Basic")
    with pytest.raises(NotFoundError):
        assign_plan(company_id, 424242)
