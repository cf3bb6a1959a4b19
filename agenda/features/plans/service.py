"""
agenda/features/plans/service.py

Plan and permission service.

Handles:
- Plan seeding (basic, professional, premium)
- Company plan assignment
- Effective plan resolution with legacy defaults
- Permission and professional-headcount enforcement
"""

from typing import Dict, List, Optional
import logging

from sqlalchemy import select, insert, update, func

from agenda.core.config import settings
from agenda.core.database import get_db_session, plans, companies, professionals
from agenda.core.errors import (
    NotFoundError,
    PermissionDeniedError,
    PlanNotLoadedError,
    ProfessionalLimitError,
)
from agenda.core.metrics import plan_access_denied_total
from agenda.models.plan import (
    FEATURE_KEYS,
    CompanyCreate,
    CompanyPlan,
    PlanCreate,
    PlanData,
    PlanInfo,
    PlanPermissions,
    PlanSummary,
    PlanUsage,
)

logger = logging.getLogger(__name__)

# Plans without an explicit ceiling allow a single professional
DEFAULT_MAX_PROFESSIONALS = 1

PERMISSION_LABELS = {
    "dashboard": "Dashboard",
    "appointments": "Appointments",
    "services": "Services",
    "professionals": "Professionals",
    "clients": "Clients",
    "reviews": "Reviews",
    "tasks": "Tasks",
    "pointsProgram": "Points Program",
    "loyalty": "Loyalty",
    "inventory": "Inventory",
    "messages": "Messages",
    "coupons": "Coupons",
    "financial": "Financial",
    "reports": "Reports",
    "settings": "Settings",
}

_BASIC_FEATURES = ("dashboard", "appointments", "services", "professionals", "clients", "settings")
_PROFESSIONAL_FEATURES = _BASIC_FEATURES + ("reviews", "tasks", "messages", "reports", "financial")

DEFAULT_PLANS = {
    "Basic": {
        "price_cents": 4990,
        "free_days": 7,
        "max_professionals": 1,
        "permissions": {key: key in _BASIC_FEATURES for key in FEATURE_KEYS},
    },
    "Professional": {
        "price_cents": 9990,
        "free_days": 7,
        "max_professionals": 5,
        "permissions": {key: key in _PROFESSIONAL_FEATURES for key in FEATURE_KEYS},
    },
    "Premium": {
        "price_cents": 19990,
        "free_days": 14,
        "max_professionals": 50,
        "permissions": {key: True for key in FEATURE_KEYS},
    },
}


def get_permission_label(permission: str) -> str:
    return PERMISSION_LABELS.get(permission, permission)


def _effective_permissions(stored: Optional[Dict[str, bool]]) -> PlanPermissions:
    # Plans created before permissions existed keep full access
    if stored is None:
        return PlanPermissions.allow_all()
    return PlanPermissions.model_validate(stored)


def _row_to_summary(row) -> PlanSummary:
    return PlanSummary(
        id=row.id,
        name=row.name,
        price_cents=row.price_cents,
        free_days=row.free_days,
        max_professionals=row.max_professionals or DEFAULT_MAX_PROFESSIONALS,
        permissions=_effective_permissions(row.permissions),
        is_active=row.is_active,
    )


def seed_plans() -> Dict[str, int]:
    """
    Seed default plans into database (idempotent).

    Returns:
        Mapping of plan name to plan id
    """
    seeded: Dict[str, int] = {}
    with get_db_session() as session:
        for name, config in DEFAULT_PLANS.items():
            existing = session.execute(
                select(plans.c.id).where(plans.c.name == name)
            ).first()
            if existing:
                seeded[name] = existing.id
                continue

            result = session.execute(
                insert(plans).values(
                    name=name,
                    price_cents=config["price_cents"],
                    free_days=config["free_days"],
                    max_professionals=config["max_professionals"],
                    permissions=config["permissions"],
                    is_active=True,
                )
            )
            seeded[name] = result.inserted_primary_key[0]
    return seeded


def create_plan(data: PlanCreate) -> PlanSummary:
    stored = data.permissions.as_dict() if data.permissions is not None else None
    with get_db_session() as session:
        result = session.execute(
            insert(plans).values(
                name=data.name,
                price_cents=data.price_cents,
                free_days=data.free_days,
                max_professionals=data.max_professionals,
                permissions=stored,
                is_active=True,
            )
        )
        plan_id = result.inserted_primary_key[0]
    logger.info(f"[plans] created plan {plan_id} ({data.name})")
    return get_plan(plan_id)


def get_plan(plan_id: int) -> Optional[PlanSummary]:
    """Get plan by ID."""
    with get_db_session() as session:
        row = session.execute(
            select(plans).where(plans.c.id == plan_id)
        ).first()
        if not row:
            return None
        return _row_to_summary(row)


def list_plans(active_only: bool = True) -> List[PlanSummary]:
    query = select(plans).order_by(plans.c.price_cents, plans.c.id)
    if active_only:
        query = query.where(plans.c.is_active.is_(True))
    with get_db_session() as session:
        return [_row_to_summary(row) for row in session.execute(query)]


def create_company(data: CompanyCreate) -> int:
    """Create a company and return its id."""
    plan_id = data.plan_id if data.plan_id is not None else settings.DEFAULT_PLAN_ID
    if plan_id is not None and get_plan(plan_id) is None:
        raise NotFoundError(f"Plan {plan_id} not found")

    with get_db_session() as session:
        result = session.execute(
            insert(companies).values(name=data.name, email=data.email, plan_id=plan_id)
        )
        return result.inserted_primary_key[0]


def get_company(company_id: int):
    with get_db_session() as session:
        return session.execute(
            select(companies).where(companies.c.id == company_id)
        ).first()


def assign_plan(company_id: int, plan_id: int) -> CompanyPlan:
    """
    Assign plan to company.

    Raises:
        NotFoundError: If the company or plan doesn't exist
    """
    if get_plan(plan_id) is None:
        raise NotFoundError(f"Plan {plan_id} not found")

    with get_db_session() as session:
        result = session.execute(
            update(companies).where(companies.c.id == company_id).values(plan_id=plan_id)
        )
        if result.rowcount == 0:
            raise NotFoundError(f"Company {company_id} not found")

    logger.info(f"[plans] company {company_id} assigned plan {plan_id}")
    return load_company_plan(company_id)


def load_company_plan(company_id: int) -> Optional[CompanyPlan]:
    """
    Resolve the effective plan of a company.

    Returns None when the company doesn't exist, has no plan, or its plan
    row is gone.
    """
    with get_db_session() as session:
        row = session.execute(
            select(plans, companies.c.id.label("company_id"))
            .select_from(companies.join(plans, companies.c.plan_id == plans.c.id))
            .where(companies.c.id == company_id)
        ).first()

    if not row:
        logger.debug(f"[plans] no plan loaded for company {company_id}")
        return None

    return CompanyPlan(
        company_id=row.company_id,
        plan_id=row.id,
        name=row.name,
        max_professionals=row.max_professionals or DEFAULT_MAX_PROFESSIONALS,
        permissions=_effective_permissions(row.permissions),
    )


def get_professionals_count(company_id: int) -> int:
    with get_db_session() as session:
        return session.execute(
            select(func.count())
            .select_from(professionals)
            .where(professionals.c.company_id == company_id)
        ).scalar_one()


def require_company_plan(company_id: int) -> CompanyPlan:
    company_plan = load_company_plan(company_id)
    if company_plan is None:
        plan_access_denied_total.inc(labels={"reason": "plan_not_loaded"})
        raise PlanNotLoadedError("Company plan not loaded")
    return company_plan


def build_plan_data(company_id: int) -> PlanData:
    """Plan plus headcount usage, as served by the plan-info endpoint."""
    company_plan = require_company_plan(company_id)
    return PlanData(
        plan=PlanInfo(
            id=company_plan.plan_id,
            name=company_plan.name,
            max_professionals=company_plan.max_professionals,
            permissions=company_plan.permissions,
        ),
        usage=PlanUsage(
            professionals_count=get_professionals_count(company_id),
            professionals_limit=company_plan.max_professionals,
        ),
    )


def check_permission(company_plan: CompanyPlan, permission: str) -> None:
    """Raise PermissionDeniedError unless the plan includes the feature."""
    if company_plan.permissions.get(permission):
        return

    plan_access_denied_total.inc(labels={"reason": "permission"})
    logger.warning(
        "[plans] permission denied",
        extra={"company_id": company_plan.company_id, "feature": permission},
    )
    raise PermissionDeniedError(
        f'Access denied. Your plan "{company_plan.name}" does not include '
        f'the "{get_permission_label(permission)}" feature.',
        required_permission=permission,
    )


def check_professionals_limit(company_plan: CompanyPlan) -> int:
    """
    Raise ProfessionalLimitError when the headcount ceiling is reached.

    Returns:
        Current professionals count
    """
    current = get_professionals_count(company_plan.company_id)
    if current >= company_plan.max_professionals:
        plan_access_denied_total.inc(labels={"reason": "professional_limit"})
        logger.warning(
            "[plans] professional limit reached",
            extra={"company_id": company_plan.company_id},
        )
        raise ProfessionalLimitError(
            f"Professional limit reached. Your plan allows at most "
            f"{company_plan.max_professionals} professionals.",
            limit=company_plan.max_professionals,
            current=current,
        )
    return current
