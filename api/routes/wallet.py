"""
Wallet API routes
"""
from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from api.dependencies import get_current_user, get_ledger_service
from application.dtos.wallets import TransactionView, WalletView, WithdrawRequest
from application.services.ledger_service import LedgerService
from core.response import Response as ApiResponse, success_response
from domain.user.entity import User


router = APIRouter(prefix="/wallet", tags=["Wallet"])


@router.get("", summary="Get my wallet", response_model=ApiResponse[WalletView])
async def get_wallet(
    current_user: User = Depends(get_current_user),
    service: LedgerService = Depends(get_ledger_service),
):
    wallet = await service.get_wallet(current_user.id)
    return success_response(data=WalletView.model_validate(wallet))


@router.get("/transactions", summary="List wallet transactions", response_model=ApiResponse[list[TransactionView]])
async def list_transactions(
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    service: LedgerService = Depends(get_ledger_service),
):
    transactions = await service.list_transactions(current_user.id, skip=skip, limit=limit)
    return success_response(data=[TransactionView.model_validate(t) for t in transactions])


@router.post("/withdraw", summary="Withdraw funds", response_model=ApiResponse[TransactionView])
async def withdraw(
    payload: WithdrawRequest,
    current_user: User = Depends(get_current_user),
    service: LedgerService = Depends(get_ledger_service),
):
    transaction = await service.withdraw(current_user.id, payload.amount, bank_details=payload.bank_details)
    return success_response(data=TransactionView.model_validate(transaction), message="Withdrawal requested")
