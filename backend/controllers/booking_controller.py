"""Controller layer for booking creation and admin booking management."""

from __future__ import annotations

from datetime import date, time
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field, field_validator

from backend.controllers.dependencies import get_auth_service, get_booking_service, require_admin
from backend.domain.models import Booking, BookingStatus
from backend.repository.data_repository import StorageError
from backend.services.auth_service import (
    AdminTokenNotConfiguredError,
    AuthService,
    InvalidAdminTokenError,
)
from backend.services.booking_service import (
    BookingNotFoundError,
    BookingOptionNotFoundError,
    BookingService,
    BookingValidationError,
    CapacityExceededError,
)
from backend.utils.logger import get_logger


logger = get_logger(__name__)

router = APIRouter(tags=["bookings"])


class LoginRequest(BaseModel):
    admin_token: str = Field(min_length=1)


class LoginResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"


class CreateBookingRequest(BaseModel):
    option_id: int = Field(gt=0)
    date: date
    time_slot: time
    person_id: Optional[int] = Field(default=None, gt=0)
    notes: Optional[str] = Field(default=None, max_length=2000)

    @field_validator("time_slot")
    @classmethod
    def validate_time_slot(cls, value: time) -> time:
        if value.tzinfo is not None:
            raise ValueError("time_slot is wall-clock time in the owner's timezone")
        return value


class UpdateStatusRequest(BaseModel):
    status: BookingStatus


class BookingResponse(BaseModel):
    booking_id: int = Field(gt=0)
    option_id: int = Field(gt=0)
    date: date
    time_slot: str = Field(pattern=r"^\d{2}:\d{2}$")
    status: BookingStatus
    person_id: Optional[int] = None
    notes: Optional[str] = None


def to_booking_response(booking: Booking) -> BookingResponse:
    return BookingResponse(
        booking_id=booking.booking_id,
        option_id=booking.option_id,
        date=booking.date,
        time_slot=booking.time_slot.strftime("%H:%M"),
        status=booking.status,
        person_id=booking.person_id,
        notes=booking.notes,
    )


@router.post(
    "/login",
    response_model=LoginResponse,
    status_code=status.HTTP_200_OK,
)
async def login(
    payload: LoginRequest,
    auth_service: AuthService = Depends(get_auth_service),
) -> LoginResponse:
    try:
        return LoginResponse(access_token=auth_service.login(payload.admin_token))
    except AdminTokenNotConfiguredError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(exc),
        ) from exc
    except InvalidAdminTokenError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(exc),
        ) from exc


@router.post(
    "/bookings",
    response_model=BookingResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_booking(
    payload: CreateBookingRequest,
    service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    """Reserve one unit of capacity in a generated slot."""
    try:
        booking = service.create_booking(
            payload.option_id,
            payload.date,
            payload.time_slot,
            person_id=payload.person_id,
            notes=payload.notes,
        )
        return to_booking_response(booking)
    except BookingOptionNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc
    except BookingValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    except CapacityExceededError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=str(exc),
        ) from exc
    except StorageError as exc:
        logger.error("Booking write failed: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Booking storage is temporarily unavailable; retry",
        ) from exc


@router.get(
    "/bookings/{booking_id}",
    response_model=BookingResponse,
    status_code=status.HTTP_200_OK,
    dependencies=[Depends(require_admin)],
)
async def get_booking(
    booking_id: int,
    service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    try:
        return to_booking_response(service.get_booking(booking_id))
    except BookingNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc


@router.post(
    "/bookings/{booking_id}/status",
    response_model=BookingResponse,
    status_code=status.HTTP_200_OK,
    dependencies=[Depends(require_admin)],
)
async def update_booking_status(
    booking_id: int,
    payload: UpdateStatusRequest,
    service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    try:
        return to_booking_response(service.update_status(booking_id, payload.status))
    except BookingNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc
    except CapacityExceededError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=str(exc),
        ) from exc
    except StorageError as exc:
        logger.error("Booking status update failed: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Booking storage is temporarily unavailable; retry",
        ) from exc
