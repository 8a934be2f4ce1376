"""
Booking API routes
"""
from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from api.dependencies import get_booking_service, get_current_user
from application.dtos.wallets import BookingStatusRequest, BookingView, CreateBookingRequest
from application.services.booking_service import BookingService
from core.response import Response as ApiResponse, success_response
from domain.user.entity import User


router = APIRouter(prefix="/bookings", tags=["Bookings"])


@router.post("", summary="Create a booking", response_model=ApiResponse[BookingView])
async def create_booking(
    payload: CreateBookingRequest,
    current_user: User = Depends(get_current_user),
    service: BookingService = Depends(get_booking_service),
):
    order = await service.create_booking(
        current_user.id,
        payload.artisan_id,
        payload.amount,
        currency=payload.currency,
        description=payload.description,
        scheduled_at=payload.scheduled_at,
    )
    return success_response(data=BookingView.model_validate(order), message="Booking created")


@router.get("", summary="List my bookings", response_model=ApiResponse[list[BookingView]])
async def list_bookings(
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    service: BookingService = Depends(get_booking_service),
):
    orders = await service.list_bookings(current_user.id, skip=skip, limit=limit)
    return success_response(data=[BookingView.model_validate(o) for o in orders])


@router.get("/{order_id}", summary="Get booking", response_model=ApiResponse[BookingView])
async def get_booking(
    order_id: int,
    current_user: User = Depends(get_current_user),
    service: BookingService = Depends(get_booking_service),
):
    order = await service.get_booking(order_id, current_user.id)
    return success_response(data=BookingView.model_validate(order))


@router.post("/{order_id}/status", summary="Change booking status", response_model=ApiResponse[BookingView])
async def change_status(
    order_id: int,
    payload: BookingStatusRequest,
    current_user: User = Depends(get_current_user),
    service: BookingService = Depends(get_booking_service),
):
    """
    - **accept** / **start** / **complete**: artisan only
    - **cancel**: either party
    - **approve**: customer sign-off, satisfies the ``customer_approved`` escrow condition
    """
    if payload.action == "approve":
        await service.approve_service(order_id, current_user.id)
        order = await service.get_booking(order_id, current_user.id)
    else:
        order = await service.change_status(order_id, current_user.id, payload.action, reason=payload.reason)
    return success_response(data=BookingView.model_validate(order))
