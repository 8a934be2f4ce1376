"""
Payout API routes
"""
from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from api.dependencies import get_current_admin, get_current_user, get_payout_service
from application.dtos.wallets import PayoutBatchView, PayoutView
from application.services.payout_service import PayoutService
from core.response import Response as ApiResponse, success_response
from domain.user.entity import User


router = APIRouter(prefix="/payouts", tags=["Payouts"])


@router.get("", summary="List my payouts", response_model=ApiResponse[list[PayoutView]])
async def list_payouts(
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    service: PayoutService = Depends(get_payout_service),
):
    payouts = await service.list_payouts(current_user.id, skip=skip, limit=limit)
    return success_response(data=[PayoutView.model_validate(p) for p in payouts])


@router.get("/{payout_id}", summary="Get payout", response_model=ApiResponse[PayoutView])
async def get_payout(
    payout_id: int,
    current_user: User = Depends(get_current_user),
    service: PayoutService = Depends(get_payout_service),
):
    payout = await service.get_payout(payout_id, current_user.id)
    return success_response(data=PayoutView.model_validate(payout))


@router.post("/run", summary="Run the payout batch now (admin)", response_model=ApiResponse[PayoutBatchView])
async def run_payouts(
    current_user: User = Depends(get_current_admin),
    service: PayoutService = Depends(get_payout_service),
):
    report = await service.run_payout_batch()
    return success_response(
        data=PayoutBatchView(
            created=[PayoutView.model_validate(p) for p in report.created],
            paid=report.paid,
            failed=report.failed,
            skipped_groups=report.skipped_groups,
        ),
        message="Payout batch finished",
    )
