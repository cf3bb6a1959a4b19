"""
agenda/features/professionals/service.py

Professional roster for a company, bounded by the plan headcount.
"""

from typing import List
import logging

from sqlalchemy import select, insert

from agenda.core.database import get_db_session, professionals
from agenda.features.plans.service import check_professionals_limit, require_company_plan
from agenda.models.appointment import Professional, ProfessionalCreate

logger = logging.getLogger(__name__)


def _row_to_professional(row) -> Professional:
    return Professional(
        id=row.id,
        company_id=row.company_id,
        name=row.name,
        email=row.email,
        phone=row.phone,
        is_active=row.is_active,
        created_at=row.created_at,
    )


def list_professionals(company_id: int) -> List[Professional]:
    with get_db_session() as session:
        rows = session.execute(
            select(professionals)
            .where(professionals.c.company_id == company_id)
            .order_by(professionals.c.id)
        )
        return [_row_to_professional(row) for row in rows]


def add_professional(company_id: int, data: ProfessionalCreate) -> Professional:
    """
    Add a professional to a company.

    Raises:
        PlanNotLoadedError: company has no plan
        ProfessionalLimitError: headcount ceiling already reached
    """
    company_plan = require_company_plan(company_id)
    current = check_professionals_limit(company_plan)

    with get_db_session() as session:
        result = session.execute(
            insert(professionals).values(
                company_id=company_id,
                name=data.name,
                email=data.email,
                phone=data.phone,
            )
        )
        professional_id = result.inserted_primary_key[0]
        row = session.execute(
            select(professionals).where(professionals.c.id == professional_id)
        ).first()

    logger.info(
        f"[professionals] added {professional_id} ({current + 1}/{company_plan.max_professionals})",
        extra={"company_id": company_id},
    )
    return _row_to_professional(row)
