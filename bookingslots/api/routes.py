"""
Slots and bookings endpoints.
"""

import datetime
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse

from ..context import SchedulingContext
from ..domain.exceptions import SlotConflict
from ..domain.models import BookingRequest, to_utc
from .schemas import BookingIn, BookingOut, ConflictOut, SlotOut, SlotsResponse

logger = logging.getLogger(__name__)

router = APIRouter()

ALTERNATIVES_ON_CONFLICT = 3


def get_context(request: Request) -> SchedulingContext:
    return request.app.state.context


@router.get("/slots", response_model=SlotsResponse)
async def list_slots(
    user_id: str = Query(..., alias="userId", min_length=1),
    duration: Optional[int] = Query(None, ge=1, le=24 * 60),
    count: Optional[int] = Query(None, ge=1, le=100),
    date: Optional[datetime.date] = Query(None),
    context: SchedulingContext = Depends(get_context),
):
    """Next bookable slots for a user; an empty list means nothing is free in the horizon."""
    result = await context.slot_finder.find_slots(
        user_id,
        duration_minutes=duration,
        count=count,
        start_date=date,
    )
    return SlotsResponse(
        slots=[SlotOut.from_slot(slot) for slot in result.slots],
        out_of_horizon=result.out_of_horizon,
        partial=result.partial,
    )


@router.post("/bookings", response_model=BookingOut, status_code=201)
async def create_booking(
    body: BookingIn,
    context: SchedulingContext = Depends(get_context),
):
    """Validate the requested time against live data and reserve it."""
    request = BookingRequest(
        user_id=body.user_id,
        start_time=to_utc(body.start_time),
        end_time=to_utc(body.end_time),
        attendee_email=body.attendee_email,
        attendee_name=body.attendee_name,
        title=body.title,
        notes=body.notes,
        requires_approval=body.requires_approval,
    )

    try:
        booking = await context.validator.confirm(request)
    except SlotConflict as exc:
        duration = int((request.end_time - request.start_time).total_seconds() // 60)
        alternatives = await context.slot_finder.suggest_alternatives(
            request.user_id,
            after=request.start_time,
            duration_minutes=duration,
            count=ALTERNATIVES_ON_CONFLICT,
        )
        payload = ConflictOut(
            message=exc.describe(),
            alternatives=[SlotOut.from_slot(slot) for slot in alternatives],
        )
        return JSONResponse(status_code=409, content=payload.model_dump(by_alias=True))

    return BookingOut.from_booking(booking)


@router.get("/bookings/{booking_id}", response_model=BookingOut)
async def get_booking(booking_id: str, context: SchedulingContext = Depends(get_context)):
    return BookingOut.from_booking(context.store.get_booking(booking_id))


@router.post("/bookings/{booking_id}/cancel", response_model=BookingOut)
async def cancel_booking(booking_id: str, context: SchedulingContext = Depends(get_context)):
    """Cancel a booking; the time becomes bookable again right away."""
    return BookingOut.from_booking(context.validator.cancel(booking_id))


@router.post("/bookings/{booking_id}/approve", response_model=BookingOut)
async def approve_booking(booking_id: str, context: SchedulingContext = Depends(get_context)):
    return BookingOut.from_booking(context.validator.approve(booking_id))


@router.get("/health")
async def health():
    return {"status": "ok"}
