"""Professional and availability template models."""

from enum import Enum
from typing import List, Optional
from pydantic import BaseModel, Field, field_validator, model_validator

from ..utils.helpers import label_to_minutes


class ProfessionalType(str, Enum):
    """Kinds of professionals on the marketplace."""
    DOCTOR = "doctor"
    PHARMACIST = "pharmacist"
    THERAPIST = "therapist"
    DENTIST = "dentist"
    LAWYER = "lawyer"


class AvailabilityWindow(BaseModel):
    """One entry of a professional's weekly availability template."""
    day: int = Field(..., ge=0, le=6, description="Weekday, 0=Monday")
    start: str = Field(..., description="Window start in HH:MM (24-hour)")
    end: str = Field(..., description="Window end in HH:MM (24-hour), exclusive")
    slot_duration_minutes: int = Field(default=30, gt=0, description="Slot width in minutes")
    enabled: bool = Field(default=True)

    @field_validator("start", "end")
    @classmethod
    def _check_label(cls, value: str) -> str:
        label_to_minutes(value)
        return value

    @model_validator(mode="after")
    def _check_order(self) -> "AvailabilityWindow":
        if label_to_minutes(self.end) <= label_to_minutes(self.start):
            raise ValueError("availability window must end after it starts")
        return self


class Professional(BaseModel):
    """A consultant who can be booked."""
    id: str = Field(..., description="Professional's user ID")
    name: str = Field(default="", description="Display name")
    professional_type: ProfessionalType = Field(default=ProfessionalType.DOCTOR)
    availability: List[AvailabilityWindow] = Field(default_factory=list)
    is_online: bool = Field(default=False)
    accepts_emergency: bool = Field(default=True)
    consultation_fee: int = Field(default=5000, ge=0)
    max_daily_slots: Optional[int] = Field(
        default=None,
        ge=0,
        description="Overrides the type-derived daily capacity when set"
    )
    consultations_completed: int = Field(default=0)
    rating: float = Field(default=0.0)
    review_count: int = Field(default=0)

    def window_for(self, weekday: int) -> Optional[AvailabilityWindow]:
        """Get the enabled template entry for a weekday, if any."""
        for window in self.availability:
            if window.day == weekday and window.enabled:
                return window
        return None

    @property
    def can_take_emergency(self) -> bool:
        return self.accepts_emergency and self.is_online
