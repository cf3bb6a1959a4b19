"""
agenda/features/appointments/service.py

Appointment persistence and the live-update envelope announcing new ones.
"""

from typing import Any, Dict, List, Optional
from datetime import datetime
import logging

from sqlalchemy import select, insert

from agenda.core.database import get_db_session, appointments, professionals
from agenda.core.errors import NotFoundError
from agenda.models.appointment import NEW_APPOINTMENT, Appointment, AppointmentCreate, AppointmentEvent

logger = logging.getLogger(__name__)


def _row_to_appointment(row) -> Appointment:
    return Appointment(
        id=row.id,
        company_id=row.company_id,
        professional_id=row.professional_id,
        client_name=row.client_name,
        client_phone=row.client_phone,
        service_name=row.service_name,
        scheduled_at=row.scheduled_at,
        duration_minutes=row.duration_minutes,
        status=row.status,
        notes=row.notes,
        created_at=row.created_at,
    )


def list_appointments(
    company_id: int,
    *,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
) -> List[Appointment]:
    query = select(appointments).where(appointments.c.company_id == company_id)
    if start is not None:
        query = query.where(appointments.c.scheduled_at >= start)
    if end is not None:
        query = query.where(appointments.c.scheduled_at < end)
    with get_db_session() as session:
        rows = session.execute(query.order_by(appointments.c.scheduled_at, appointments.c.id))
        return [_row_to_appointment(row) for row in rows]


def create_appointment(company_id: int, data: AppointmentCreate) -> Appointment:
    """
    Persist an appointment for a company.

    Raises:
        NotFoundError: professional_id doesn't belong to the company
    """
    with get_db_session() as session:
        if data.professional_id is not None:
            owner = session.execute(
                select(professionals.c.id)
                .where(professionals.c.id == data.professional_id)
                .where(professionals.c.company_id == company_id)
            ).first()
            if not owner:
                raise NotFoundError(f"Professional {data.professional_id} not found")

        result = session.execute(
            insert(appointments).values(
                company_id=company_id,
                professional_id=data.professional_id,
                client_name=data.client_name,
                client_phone=data.client_phone,
                service_name=data.service_name,
                scheduled_at=data.scheduled_at,
                duration_minutes=data.duration_minutes,
                notes=data.notes,
            )
        )
        appointment_id = result.inserted_primary_key[0]
        row = session.execute(
            select(appointments).where(appointments.c.id == appointment_id)
        ).first()

    logger.info(f"[appointments] created {appointment_id}", extra={"company_id": company_id})
    return _row_to_appointment(row)


def build_new_appointment_event(appointment: Appointment) -> Dict[str, Any]:
    """JSON-ready envelope pushed to the company's live-update subscribers."""
    event = AppointmentEvent(
        type=NEW_APPOINTMENT,
        appointment=appointment.model_dump(mode="json", by_alias=True),
    )
    return event.model_dump(mode="json", by_alias=True)
