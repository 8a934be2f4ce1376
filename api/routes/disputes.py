"""
Dispute API routes
"""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query

from api.dependencies import get_current_user, get_dispute_service
from application.dtos.disputes import (
    CloseRequest,
    DisputeMessageRequest,
    DisputeView,
    EscalateRequest,
    InitiateDisputeRequest,
    ResolutionRequest,
)
from application.services.dispute_service import DisputeService
from core.response import Response as ApiResponse, success_response
from domain.dispute.entity import DisputeStatus
from domain.user.entity import User


router = APIRouter(prefix="/disputes", tags=["Disputes"])


@router.post("", summary="Open a dispute", response_model=ApiResponse[DisputeView])
async def initiate_dispute(
    payload: InitiateDisputeRequest,
    current_user: User = Depends(get_current_user),
    service: DisputeService = Depends(get_dispute_service),
):
    """
    Open a dispute against a paid booking.

    - **order_id**: the disputed booking
    - **type**: quality | delivery | payment | communication | other
    - **evidence**: up to 10 photos, documents or statements
    """
    dispute = await service.initiate_dispute(
        payload.order_id, current_user.id, payload.type, payload.description, payload.evidence
    )
    return success_response(data=DisputeView.model_validate(dispute), message="Dispute opened")


@router.get("", summary="List disputes", response_model=ApiResponse[list[DisputeView]])
async def list_disputes(
    status: Optional[DisputeStatus] = Query(default=None),
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    service: DisputeService = Depends(get_dispute_service),
):
    disputes = await service.list_disputes(current_user.id, status=status, skip=skip, limit=limit)
    return success_response(data=[DisputeView.model_validate(d) for d in disputes])


@router.get("/{dispute_id}", summary="Get dispute", response_model=ApiResponse[DisputeView])
async def get_dispute(
    dispute_id: int,
    current_user: User = Depends(get_current_user),
    service: DisputeService = Depends(get_dispute_service),
):
    dispute = await service.get_dispute(dispute_id, current_user.id)
    return success_response(data=DisputeView.model_validate(dispute))


@router.post("/{dispute_id}/messages", summary="Post a dispute message", response_model=ApiResponse[DisputeView])
async def add_message(
    dispute_id: int,
    payload: DisputeMessageRequest,
    current_user: User = Depends(get_current_user),
    service: DisputeService = Depends(get_dispute_service),
):
    dispute = await service.add_dispute_message(dispute_id, current_user.id, payload.text, payload.attachments)
    return success_response(data=DisputeView.model_validate(dispute))


@router.post("/{dispute_id}/review", summary="Start review (admin)", response_model=ApiResponse[DisputeView])
async def start_review(
    dispute_id: int,
    current_user: User = Depends(get_current_user),
    service: DisputeService = Depends(get_dispute_service),
):
    dispute = await service.start_review(dispute_id, current_user.id)
    return success_response(data=DisputeView.model_validate(dispute))


@router.post("/{dispute_id}/escalate", summary="Escalate dispute", response_model=ApiResponse[DisputeView])
async def escalate(
    dispute_id: int,
    payload: EscalateRequest,
    current_user: User = Depends(get_current_user),
    service: DisputeService = Depends(get_dispute_service),
):
    dispute = await service.escalate_dispute(dispute_id, payload.reason, current_user.id)
    return success_response(data=DisputeView.model_validate(dispute), message="Dispute escalated")


@router.post("/{dispute_id}/resolve", summary="Resolve dispute (admin)", response_model=ApiResponse[DisputeView])
async def resolve(
    dispute_id: int,
    payload: ResolutionRequest,
    current_user: User = Depends(get_current_user),
    service: DisputeService = Depends(get_dispute_service),
):
    """
    Apply a resolution and move the money.

    - **refund**: refund ``amount`` (default: all refundable) to the customer
    - **release_payment**: release escrow to the artisan
    - **split_payment**: refund ``amount`` and release ``release_amount``; the two must sum to the payment
    - **no_action**: close without moving funds
    """
    dispute = await service.resolve_dispute(dispute_id, payload, current_user.id)
    return success_response(data=DisputeView.model_validate(dispute), message="Dispute resolved")


@router.post("/{dispute_id}/close", summary="Close dispute (admin)", response_model=ApiResponse[DisputeView])
async def close(
    dispute_id: int,
    payload: CloseRequest,
    current_user: User = Depends(get_current_user),
    service: DisputeService = Depends(get_dispute_service),
):
    dispute = await service.close_dispute(dispute_id, payload.reason, current_user.id)
    return success_response(data=DisputeView.model_validate(dispute), message="Dispute closed")
