"""
Request and response bodies of the REST API.

Field names are camelCase on the wire; every timestamp carries an explicit
UTC offset.
"""

from typing import List

from pydantic import AwareDatetime, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ..domain.models import Booking, Slot, to_utc


def to_iso(value) -> str:
    return to_utc(value).isoformat()


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SlotOut(CamelModel):
    start: str
    end: str
    label: str

    @classmethod
    def from_slot(cls, slot: Slot) -> "SlotOut":
        return cls(start=to_iso(slot.start), end=to_iso(slot.end), label=slot.label)


class SlotsResponse(CamelModel):
    slots: List[SlotOut]
    out_of_horizon: bool = False
    partial: bool = False


class BookingIn(CamelModel):
    user_id: str = Field(min_length=1)
    start_time: AwareDatetime
    end_time: AwareDatetime
    attendee_email: str = Field(min_length=3)
    attendee_name: str = ""
    title: str = ""
    notes: str = ""
    requires_approval: bool = False


class BookingOut(CamelModel):
    id: str
    user_id: str
    start_time: str
    end_time: str
    status: str
    attendee_email: str
    attendee_name: str
    title: str
    notes: str

    @classmethod
    def from_booking(cls, booking: Booking) -> "BookingOut":
        return cls(
            id=booking.id,
            user_id=booking.user_id,
            start_time=to_iso(booking.start_time),
            end_time=to_iso(booking.end_time),
            status=booking.status.value,
            attendee_email=booking.attendee_email,
            attendee_name=booking.attendee_name,
            title=booking.title,
            notes=booking.notes,
        )


class ConflictOut(CamelModel):
    error: str = "slot_conflict"
    message: str
    alternatives: List[SlotOut] = Field(default_factory=list)
