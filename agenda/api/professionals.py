"""
agenda/api/professionals.py

Professional endpoints. Adding a professional is gated on the plan's headcount
limit as well as the "professionals" feature.
"""
from typing import List

from fastapi import APIRouter, Depends

from agenda.api.deps import require_permission, require_professional_slot
from agenda.features.professionals.service import add_professional, list_professionals
from agenda.models.appointment import Professional, ProfessionalCreate
from agenda.models.plan import CompanyPlan

router = APIRouter(prefix="/api/company/professionals")


@router.get("", response_model=List[Professional])
def get_professionals(company_plan: CompanyPlan = Depends(require_permission("professionals"))):
    return list_professionals(company_plan.company_id)


@router.post("", response_model=Professional, status_code=201)
def post_professional(
    body: ProfessionalCreate,
    company_plan: CompanyPlan = Depends(require_professional_slot),
):
    return add_professional(company_plan.company_id, body)
