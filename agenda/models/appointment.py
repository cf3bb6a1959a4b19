"""
agenda/models/appointment.py

Appointment, professional and live-update event models.
"""

from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import Field

from agenda.models.plan import CamelModel

NEW_APPOINTMENT = "new_appointment"


class ProfessionalCreate(CamelModel):
    name: str = Field(min_length=1, max_length=200)
    email: Optional[str] = None
    phone: Optional[str] = None


class Professional(CamelModel):
    id: int
    company_id: int
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    is_active: bool = True
    created_at: datetime


class AppointmentCreate(CamelModel):
    client_name: str = Field(min_length=1, max_length=200)
    client_phone: Optional[str] = None
    professional_id: Optional[int] = None
    service_name: Optional[str] = None
    scheduled_at: datetime
    duration_minutes: int = Field(default=30, gt=0, le=24 * 60)
    notes: Optional[str] = None


class Appointment(CamelModel):
    id: int
    company_id: int
    professional_id: Optional[int] = None
    client_name: str
    client_phone: Optional[str] = None
    service_name: Optional[str] = None
    scheduled_at: datetime
    duration_minutes: int
    status: str
    notes: Optional[str] = None
    created_at: datetime


class AppointmentEvent(CamelModel):
    """Envelope pushed over the live-update stream."""
    type: Literal["new_appointment"] = NEW_APPOINTMENT
    # Server-defined record; clients treat it as opaque
    appointment: Any
