"""
agenda/api/plans.py

Plan information endpoints.
"""
from typing import List
import logging

from fastapi import APIRouter, Depends

from agenda.core.auth import get_company_id
from agenda.features.plans.service import build_plan_data, list_plans
from agenda.models.plan import PlanData, PlanSummary

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/api/company/plan-info", response_model=PlanData)
def get_plan_info(company_id: int = Depends(get_company_id)):
    """Current plan, permissions and professional headcount of the company."""
    return build_plan_data(company_id)


@router.get("/api/plans", response_model=List[PlanSummary])
def get_plans():
    """Public catalogue of active plans."""
    return list_plans(active_only=True)
