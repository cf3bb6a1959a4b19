"""
agenda/api/deps.py

Plan-gating dependencies for company routes.

    @router.get("/reports", dependencies=[Depends(require_permission("reports"))])
"""
from typing import Callable

from fastapi import Depends

from agenda.core.auth import get_company_id
from agenda.features.plans.service import (
    check_permission,
    check_professionals_limit,
    require_company_plan,
)
from agenda.models.plan import CompanyPlan, is_known_feature


def get_company_plan(company_id: int = Depends(get_company_id)) -> CompanyPlan:
    """Load the company's plan or fail with 403 plan_not_loaded."""
    return require_company_plan(company_id)


def require_permission(permission: str) -> Callable[..., CompanyPlan]:
    """Build a dependency that rejects companies whose plan lacks a feature."""
    if not is_known_feature(permission):
        raise ValueError(f"Unknown plan permission: {permission}")

    def dependency(company_plan: CompanyPlan = Depends(get_company_plan)) -> CompanyPlan:
        check_permission(company_plan, permission)
        return company_plan

    dependency.__name__ = f"require_{permission}"
    return dependency


_require_professionals = require_permission("professionals")


def require_professional_slot(
    company_plan: CompanyPlan = Depends(_require_professionals),
) -> CompanyPlan:
    """Reject when the plan's professional headcount is already used up."""
    check_professionals_limit(company_plan)
    return company_plan
