"""HTTP controller layer for slot and calendar availability queries."""

from __future__ import annotations

from datetime import date, datetime
from zoneinfo import ZoneInfo

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field

from backend.domain.models import DaySlots
from backend.repository.data_repository import StorageError
from backend.controllers.dependencies import get_availability_service
from backend.services.availability_service import (
    AvailabilityService,
    AvailabilityValidationError,
)
from backend.utils.logger import get_logger


logger = get_logger(__name__)

router = APIRouter(tags=["availability"])

YEAR_MONTH_PATTERN = r"^\d{4}-\d{2}$"


class SlotResponse(BaseModel):
    start_time: str = Field(pattern=r"^\d{2}:\d{2}$")
    end_time: str = Field(pattern=r"^\d{2}:\d{2}$")
    start_at: datetime
    end_at: datetime
    remaining_capacity: int = Field(ge=0)
    available: bool


class DaySlotsResponse(BaseModel):
    event_id: str
    option_id: int
    date: date
    timezone: str
    slots: list[SlotResponse]


class AvailableDatesResponse(BaseModel):
    event_id: str
    option_id: int
    month: str = Field(pattern=YEAR_MONTH_PATTERN)
    dates: list[date]


def to_day_slots_response(result: DaySlots) -> DaySlotsResponse:
    zone = ZoneInfo(result.timezone)
    return DaySlotsResponse(
        event_id=result.event_id,
        option_id=result.option_id,
        date=result.date,
        timezone=result.timezone,
        slots=[
            SlotResponse(
                start_time=slot.start_time.strftime("%H:%M"),
                end_time=slot.end_time.strftime("%H:%M"),
                start_at=datetime.combine(result.date, slot.start_time, tzinfo=zone),
                end_at=datetime.combine(result.date, slot.end_time, tzinfo=zone),
                remaining_capacity=slot.remaining_capacity or 0,
                available=slot.available,
            )
            for slot in result.slots
        ],
    )


def _storage_unavailable(exc: StorageError) -> HTTPException:
    logger.error("Availability storage read failed: %s", exc)
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail="Availability storage is temporarily unavailable; retry",
    )


@router.get(
    "/events/{event_id}/slots",
    response_model=DaySlotsResponse,
    status_code=status.HTTP_200_OK,
)
async def get_event_slots(
    event_id: str,
    option_id: int = Query(gt=0),
    target_date: date = Query(alias="date"),
    service: AvailabilityService = Depends(get_availability_service),
) -> DaySlotsResponse:
    """Slots for one day, including full slots marked unavailable."""
    try:
        return to_day_slots_response(service.get_slots(event_id, option_id, target_date))
    except StorageError as exc:
        raise _storage_unavailable(exc) from exc


@router.get(
    "/book/{url_slug}/slots",
    response_model=DaySlotsResponse,
    status_code=status.HTTP_200_OK,
)
async def get_slots_by_slug(
    url_slug: str,
    option_id: int = Query(gt=0),
    target_date: date = Query(alias="date"),
    service: AvailabilityService = Depends(get_availability_service),
) -> DaySlotsResponse:
    try:
        return to_day_slots_response(
            service.get_slots_by_slug(url_slug, option_id, target_date)
        )
    except StorageError as exc:
        raise _storage_unavailable(exc) from exc


@router.get(
    "/events/{event_id}/available_dates",
    response_model=AvailableDatesResponse,
    status_code=status.HTTP_200_OK,
)
async def get_available_dates(
    event_id: str,
    option_id: int = Query(gt=0),
    month: str = Query(pattern=YEAR_MONTH_PATTERN),
    service: AvailabilityService = Depends(get_availability_service),
) -> AvailableDatesResponse:
    year_value, month_value = (int(part) for part in month.split("-"))
    try:
        dates = service.get_available_dates(event_id, option_id, year_value, month_value)
    except AvailabilityValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    except StorageError as exc:
        raise _storage_unavailable(exc) from exc
    return AvailableDatesResponse(
        event_id=event_id,
        option_id=option_id,
        month=month,
        dates=dates,
    )
