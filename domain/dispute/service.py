"""
Dispute domain service - turns a resolution into money movements
"""
from __future__ import annotations

from dataclasses import dataclass

from domain.common.exceptions import InvalidRefundAmountException
from domain.payment.entity import Payment
from domain.payment.service import PaymentDomainService
from .entity import Resolution, ResolutionType


@dataclass(frozen=True)
class ResolutionPlan:
    refund_amount: int
    release_amount: int


class DisputeDomainService:
    """Validates resolution amounts against the disputed payment before any money moves."""

    @staticmethod
    def plan(payment: Payment, resolution: Resolution) -> ResolutionPlan:
        kind = resolution.type
        if kind == ResolutionType.REFUND:
            amount = resolution.amount if resolution.amount is not None else payment.refundable_amount
            return ResolutionPlan(PaymentDomainService.resolve_refund_amount(payment, amount), 0)
        if kind == ResolutionType.PARTIAL_REFUND:
            amount = resolution.amount or 0
            if amount <= 0 or amount >= payment.amount:
                raise InvalidRefundAmountException(amount, payment.amount - 1)
            return ResolutionPlan(PaymentDomainService.resolve_refund_amount(payment, amount), 0)
        if kind == ResolutionType.RELEASE_PAYMENT:
            return ResolutionPlan(0, payment.refundable_amount)
        # split_payment
        refund = resolution.amount or 0
        release = resolution.release_amount or 0
        PaymentDomainService.validate_split(payment, refund, release)
        return ResolutionPlan(refund, release)
