"""
Payments API routes.

Escrow intents, release, refunds and processor webhooks. Keep this thin: no
SDK details here.
"""
from __future__ import annotations

import ipaddress

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status

from api.dependencies import (
    get_current_user,
    get_payment_service,
    get_refund_service,
    get_webhook_service,
)
from application.dtos.payments import (
    AutoRefundRequest,
    AutoRefundResult,
    CreateIntentRequest,
    CreateIntentResult,
    PaymentView,
    RefundPaymentRequest,
)
from application.services.payment_service import PaymentService
from application.services.refund_service import RefundService
from application.services.webhook_service import WebhookService
from core.logging_config import get_logger
from core.response import Response as ApiResponse, success_response
from core.settings import payment_settings
from domain.payment.entity import PaymentStatus
from domain.user.entity import User


router = APIRouter(prefix="/payments", tags=["Payments"])
logger = get_logger(__name__)


def _ip_permitted(remote_ip: str, allowlist: list[str]) -> bool:
    try:
        rip = ipaddress.ip_address(remote_ip)
    except ValueError:
        return False
    for entry in allowlist:
        try:
            if "/" in entry:
                if rip in ipaddress.ip_network(entry, strict=False):
                    return True
            elif rip == ipaddress.ip_address(entry):
                return True
        except ValueError:
            logger.warning("webhook_allowlist_entry_invalid", entry=entry)
    return False


@router.post("/create-intent", summary="Create escrow payment", response_model=ApiResponse[CreateIntentResult])
async def create_intent(
    payload: CreateIntentRequest,
    current_user: User = Depends(get_current_user),
    service: PaymentService = Depends(get_payment_service),
):
    result = await service.create_escrow_payment(payload.order_id, payload.payment_method, current_user.id)
    return success_response(data=result, message="Payment intent created")


@router.get("", summary="List my payments", response_model=ApiResponse[list[PaymentView]])
async def list_payments(
    status_filter: Optional[PaymentStatus] = Query(default=None, alias="status"),
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    service: PaymentService = Depends(get_payment_service),
):
    payments = await service.list_payments(current_user.id, skip=skip, limit=limit, status=status_filter)
    return success_response(data=[PaymentView.model_validate(p) for p in payments])


@router.get("/{payment_id}", summary="Get payment", response_model=ApiResponse[PaymentView])
async def get_payment(
    payment_id: int,
    current_user: User = Depends(get_current_user),
    service: PaymentService = Depends(get_payment_service),
):
    payment = await service.get_payment(payment_id, current_user.id)
    return success_response(data=PaymentView.model_validate(payment))


@router.post("/release/{payment_id}", summary="Release escrow to the artisan", response_model=ApiResponse[PaymentView])
async def release_payment(
    payment_id: int,
    current_user: User = Depends(get_current_user),
    service: PaymentService = Depends(get_payment_service),
):
    payment = await service.release_escrow_payment(payment_id, current_user.id)
    return success_response(data=PaymentView.model_validate(payment), message="Payment released")


@router.post("/refund/{payment_id}", summary="Refund payment", response_model=ApiResponse[PaymentView])
async def refund_payment(
    payment_id: int,
    payload: RefundPaymentRequest,
    current_user: User = Depends(get_current_user),
    service: PaymentService = Depends(get_payment_service),
):
    payment = await service.process_refund(payment_id, payload.reason, payload.amount, actor_id=current_user.id)
    return success_response(data=PaymentView.model_validate(payment), message="Refund processed")


@router.post("/auto-refund/{order_id}", summary="Request automatic refund", response_model=ApiResponse[AutoRefundResult])
async def auto_refund(
    order_id: int,
    payload: AutoRefundRequest,
    current_user: User = Depends(get_current_user),
    service: RefundService = Depends(get_refund_service),
):
    result = await service.process_automatic_refund(order_id, payload.reason, current_user.id)
    return success_response(data=result)


@router.post("/webhook", summary="Processor webhook")
async def payments_webhook(request: Request, service: WebhookService = Depends(get_webhook_service)):
    allowlist = payment_settings.webhook.ip_allowlist or []
    if allowlist:
        remote_ip = request.client.host if request.client else ""
        if not _ip_permitted(remote_ip, allowlist):
            logger.warning("webhook_ip_rejected", remote_ip=remote_ip)
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Webhook source not allowed")

    raw_body = await request.body()
    headers = {k.lower(): v for k, v in request.headers.items()}
    event = await service.ingest(headers, raw_body)
    # always 200 once verified so the processor stops retrying
    return success_response(
        data={"id": event.id, "type": event.type, "provider": event.provider},
        message="Webhook received",
    )
