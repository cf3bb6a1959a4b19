"""
agenda/api/appointments.py

Appointment endpoints.

Creating an appointment announces it to every open event stream of the
company so calendars refresh without a manual reload.
"""
from datetime import datetime
from typing import List, Optional
import logging

from fastapi import APIRouter, Depends, Query
from starlette.concurrency import run_in_threadpool

from agenda.api.deps import require_permission
from agenda.core.logging import log_event
from agenda.features.appointments.service import (
    build_new_appointment_event,
    create_appointment,
    list_appointments,
)
from agenda.models.appointment import Appointment, AppointmentCreate
from agenda.models.plan import CompanyPlan
from agenda.realtime.hub import hub

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/company/appointments")

_require_appointments = require_permission("appointments")


@router.get("", response_model=List[Appointment])
def get_appointments(
    start: Optional[datetime] = Query(None, description="Inclusive lower bound on scheduled_at"),
    end: Optional[datetime] = Query(None, description="Exclusive upper bound on scheduled_at"),
    company_plan: CompanyPlan = Depends(_require_appointments),
):
    return list_appointments(company_plan.company_id, start=start, end=end)


@router.post("", response_model=Appointment, status_code=201)
async def post_appointment(
    body: AppointmentCreate,
    company_plan: CompanyPlan = Depends(_require_appointments),
):
    appointment = await run_in_threadpool(create_appointment, company_plan.company_id, body)
    delivered = await hub.publish(company_plan.company_id, build_new_appointment_event(appointment))
    log_event(
        "info",
        "appointment.announced",
        company_id=company_plan.company_id,
        event_type="new_appointment",
        extra={"appointment_id": appointment.id, "subscribers": delivered},
    )
    return appointment
