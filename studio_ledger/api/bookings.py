"""
Booking endpoints
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from .dependencies import StudioSystem, get_studio_system
from .schemas import CreateBookingRequest, UpdateBookingRequest, UpdateBookingStatusRequest
from .serializers import booking_out, pagination, parse_date_param, parse_enum
from ..bookings import BookingChannel, BookingStatus
from ..errors import ValidationError


router = APIRouter()


def _required_status(value: str) -> BookingStatus:
    booking_status = parse_enum(BookingStatus, value, "status")
    if booking_status is None:
        raise ValidationError("status is required")
    return booking_status


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_booking(
    request: CreateBookingRequest,
    system: StudioSystem = Depends(get_studio_system)
):
    """Create a booking and charge it to the customer"""
    booking = system.booking_manager.create_booking(
        customer_id=request.customer_id,
        total_selling_price=request.total_selling_price,
        shooting_date=parse_date_param(request.shooting_date, "shooting_date"),
        shooting_time=request.shooting_time,
        status=_required_status(request.status),
        source=parse_enum(BookingChannel, request.source, "source") or BookingChannel.ADMIN,
        notes=request.notes
    )
    return booking_out(booking)


@router.get("")
async def list_bookings(
    booking_status: Optional[str] = Query(None, alias="status"),
    customer_id: Optional[str] = None,
    source: Optional[str] = None,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    page: int = 1,
    limit: int = 10,
    system: StudioSystem = Depends(get_studio_system)
):
    """List bookings, latest shooting date first"""
    page = max(1, page)
    limit = max(1, limit)
    bookings, total = system.booking_manager.list_bookings(
        status=parse_enum(BookingStatus, booking_status, "status"),
        customer_id=customer_id,
        source=parse_enum(BookingChannel, source, "source"),
        start=parse_date_param(start_date, "start_date"),
        end=parse_date_param(end_date, "end_date", end_of_day=True),
        page=page,
        limit=limit
    )
    return {
        "bookings": [booking_out(b) for b in bookings],
        "pagination": pagination(page, limit, total)
    }


@router.get("/{booking_id}")
async def get_booking(
    booking_id: str,
    system: StudioSystem = Depends(get_studio_system)
):
    return booking_out(system.booking_manager.require_booking(booking_id))


@router.put("/{booking_id}")
async def update_booking(
    booking_id: str,
    request: UpdateBookingRequest,
    system: StudioSystem = Depends(get_studio_system)
):
    """Reschedule or reprice a booking"""
    booking = system.booking_manager.update_booking(
        booking_id,
        total_selling_price=request.total_selling_price,
        shooting_date=parse_date_param(request.shooting_date, "shooting_date"),
        shooting_time=request.shooting_time,
        notes=request.notes
    )
    return booking_out(booking)


@router.put("/{booking_id}/status")
async def update_booking_status(
    booking_id: str,
    request: UpdateBookingStatusRequest,
    system: StudioSystem = Depends(get_studio_system)
):
    booking = system.booking_manager.update_status(booking_id, _required_status(request.status))
    return booking_out(booking)


@router.delete("/{booking_id}")
async def delete_booking(
    booking_id: str,
    system: StudioSystem = Depends(get_studio_system)
):
    system.booking_manager.delete_booking(booking_id)
    return {"message": "Booking deleted successfully"}
