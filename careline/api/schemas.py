"""Request bodies accepted by the HTTP API."""

from typing import List, Optional
from pydantic import BaseModel, Field

from ..models import AvailabilityWindow, ConsultationMedium


class CreateBookingRequest(BaseModel):
    professional_id: str
    date: str = Field(..., description="Date in YYYY-MM-DD format")
    time: str = Field(..., description="Time label in HH:MM format")
    medium: ConsultationMedium = ConsultationMedium.VIDEO
    reason: Optional[str] = None
    patient_name: str = ""


class CreateEmergencyRequest(BaseModel):
    professional_id: str
    reason: Optional[str] = None
    patient_name: str = ""


class ReasonRequest(BaseModel):
    """Body for reject / cancel / reject-during-call."""
    reason: Optional[str] = None


class OnlineRequest(BaseModel):
    is_online: bool


class AvailabilityRequest(BaseModel):
    availability: List[AvailabilityWindow]
