"""Business exceptions shared by the domain, application and infrastructure layers.

The core layer only maps these to HTTP responses; the domain never imports
from core. Every exception carries a stable ``BusinessCode`` and an
``error_type`` naming its kind in the error taxonomy:

* ValidationError       bad input, rejected at the boundary
* NotFoundError         missing entity
* NotAuthorizedError    actor lacks permission or role
* AuthenticationError   missing or invalid credential
* ConflictError         invalid transition, duplicate, already exists
* InsufficientFundsError
* ProcessorError / ProcessorTimeoutError   payment processor failures
* InternalError         unexpected
"""
from __future__ import annotations

from typing import Optional
from shared.codes import BusinessCode
from shared.codes.payment_codes import PaymentCode


class BusinessException(Exception):
    """Base class for business exceptions."""

    kind = "BusinessError"

    def __init__(
        self,
        code: int,
        message: str,
        error_type: Optional[str] = None,
        details: Optional[dict] = None,
        field: Optional[str] = None,
    ) -> None:
        self.code = code
        self.message = message
        self.error_type = error_type or self.kind
        self.details = details
        self.field = field
        super().__init__(self.message)


# -------------------- taxonomy --------------------

class DomainValidationException(BusinessException):
    kind = "ValidationError"

    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        details: dict | None = None,
        code: int = BusinessCode.PARAM_VALIDATION_ERROR,
    ):
        super().__init__(code=code, message=message, details=details, field=field)


class NotFoundException(BusinessException):
    kind = "NotFoundError"

    def __init__(self, message: str = "Resource not found", *, code: int = BusinessCode.NOT_FOUND, details: dict | None = None):
        super().__init__(code=code, message=message, details=details)


class NotAuthorizedException(BusinessException):
    kind = "NotAuthorizedError"

    def __init__(self, message: str = "Not authorized to perform this action", *, details: dict | None = None):
        super().__init__(code=BusinessCode.FORBIDDEN, message=message, details=details)


class AuthenticationException(BusinessException):
    kind = "AuthenticationError"

    def __init__(self, message: str = "Authentication required", *, code: int = BusinessCode.UNAUTHORIZED):
        super().__init__(code=code, message=message)


class ConflictException(BusinessException):
    kind = "ConflictError"

    def __init__(self, message: str, *, code: int = BusinessCode.INVALID_STATE_TRANSITION, details: dict | None = None, field: str | None = None):
        super().__init__(code=code, message=message, details=details, field=field)


class InsufficientFundsException(BusinessException):
    kind = "InsufficientFundsError"

    def __init__(self, message: str = "Insufficient funds", *, code: int = BusinessCode.INSUFFICIENT_FUNDS, details: dict | None = None):
        super().__init__(code=code, message=message, details=details)


class ProcessorException(BusinessException):
    kind = "ProcessorError"

    def __init__(self, message: str, *, processor: str = "unknown", processor_code: str | None = None, details: dict | None = None):
        full_details = {"processor": processor, "processor_code": processor_code}
        if details:
            full_details.update(details)
        super().__init__(code=PaymentCode.PROVIDER_ERROR, message=message, details=full_details)


class ProcessorTimeoutException(BusinessException):
    kind = "ProcessorTimeoutError"

    def __init__(self, message: str = "Payment processor timed out", *, processor: str = "unknown", operation: str | None = None):
        super().__init__(
            code=PaymentCode.TIMEOUT,
            message=message,
            details={"processor": processor, "operation": operation},
        )


class ProcessorSignatureException(BusinessException):
    kind = "ValidationError"

    def __init__(self, message: str, *, processor: str = "unknown"):
        super().__init__(code=PaymentCode.SIGNATURE_ERROR, message=message, details={"processor": processor})


class InternalException(BusinessException):
    kind = "InternalError"

    def __init__(self, message: str = "Internal error", *, details: dict | None = None):
        super().__init__(code=BusinessCode.SYSTEM_ERROR, message=message, details=details)


class ResourceBusyException(ConflictException):
    def __init__(self, key: str):
        super().__init__(
            "Resource is busy, retry later",
            code=BusinessCode.RESOURCE_BUSY,
            details={"key": key},
        )


# -------------------- orders / payments --------------------

class OrderNotFoundException(NotFoundException):
    def __init__(self, order_id: int):
        super().__init__("Order not found", code=BusinessCode.ORDER_NOT_FOUND, details={"order_id": order_id})


class OrderNotPayableException(ConflictException):
    def __init__(self, order_id: int, reason: str):
        super().__init__(
            f"Order {order_id} is not payable: {reason}",
            code=BusinessCode.ORDER_NOT_PAYABLE,
            details={"order_id": order_id, "reason": reason},
        )


class PaymentNotFoundException(NotFoundException):
    def __init__(self, identifier: str):
        super().__init__(f"Payment not found: {identifier}", code=BusinessCode.PAYMENT_NOT_FOUND)


class PaymentNotInEscrowException(ConflictException):
    def __init__(self, payment_id: int, status: str):
        super().__init__(
            f"Payment {payment_id} is not in escrow (status={status})",
            code=BusinessCode.PAYMENT_NOT_IN_ESCROW,
            details={"payment_id": payment_id, "status": status},
        )


class EscrowHeldException(ConflictException):
    def __init__(self, payment_id: int, dispute_id: int | None):
        super().__init__(
            f"Payment {payment_id} is held by an active dispute",
            code=BusinessCode.ESCROW_HELD,
            details={"payment_id": payment_id, "dispute_id": dispute_id},
        )


class PaymentNotRefundableException(ConflictException):
    def __init__(self, payment_id: int, status: str):
        super().__init__(
            f"Payment {payment_id} cannot be refunded (status={status})",
            code=BusinessCode.PAYMENT_NOT_REFUNDABLE,
            details={"payment_id": payment_id, "status": status},
        )


class InvalidRefundAmountException(DomainValidationException):
    def __init__(self, amount: int, maximum: int):
        super().__init__(
            f"Refund amount {amount} must be between 1 and {maximum}",
            field="amount",
            details={"amount": amount, "maximum": maximum},
            code=BusinessCode.INVALID_REFUND_AMOUNT,
        )


# -------------------- disputes --------------------

class DisputeNotFoundException(NotFoundException):
    def __init__(self, dispute_id: int):
        super().__init__("Dispute not found", code=BusinessCode.DISPUTE_NOT_FOUND, details={"dispute_id": dispute_id})


class DisputeAlreadyExistsException(ConflictException):
    def __init__(self, payment_id: int, dispute_id: int | None):
        super().__init__(
            "An active dispute already exists for this payment",
            code=BusinessCode.DISPUTE_ALREADY_EXISTS,
            details={"payment_id": payment_id, "dispute_id": dispute_id},
        )


class DisputeClosedException(ConflictException):
    def __init__(self, dispute_id: int | None, status: str):
        super().__init__(
            f"Dispute is {status} and can no longer change",
            code=BusinessCode.DISPUTE_CLOSED,
            details={"dispute_id": dispute_id, "status": status},
        )


class InvalidSplitAmountException(DomainValidationException):
    def __init__(self, refund_amount: int, release_amount: int, total: int):
        super().__init__(
            f"Split amounts {refund_amount} + {release_amount} must equal {total}",
            field="resolution",
            details={"refund_amount": refund_amount, "release_amount": release_amount, "total": total},
            code=BusinessCode.INVALID_SPLIT_AMOUNT,
        )


# -------------------- wallet --------------------

class DuplicateReferenceException(ConflictException):
    def __init__(self, reference: str):
        super().__init__(
            f"Transaction reference already used: {reference}",
            code=BusinessCode.DUPLICATE_REFERENCE,
            details={"reference": reference},
            field="reference",
        )


class WalletLockedException(ConflictException):
    def __init__(self, user_id: int):
        super().__init__("Wallet is locked", code=BusinessCode.WALLET_LOCKED, details={"user_id": user_id})


class TransactionNotFoundException(NotFoundException):
    def __init__(self, reference: str):
        super().__init__("Wallet transaction not found", code=BusinessCode.TRANSACTION_NOT_FOUND, details={"reference": reference})


# -------------------- payouts --------------------

class PayoutNotFoundException(NotFoundException):
    def __init__(self, payout_id: int | str):
        super().__init__("Payout not found", code=BusinessCode.PAYOUT_NOT_FOUND, details={"payout_id": payout_id})


# -------------------- chat / notifications / users --------------------

class ChatNotFoundException(NotFoundException):
    def __init__(self, chat_id: int):
        super().__init__("Chat not found", code=BusinessCode.CHAT_NOT_FOUND, details={"chat_id": chat_id})


class ChatInactiveException(ConflictException):
    def __init__(self, chat_id: int, status: str):
        super().__init__(
            f"Chat is {status}",
            code=BusinessCode.CHAT_INACTIVE,
            details={"chat_id": chat_id, "status": status},
        )


class MessageNotFoundException(NotFoundException):
    def __init__(self, message_id: int):
        super().__init__("Message not found", code=BusinessCode.MESSAGE_NOT_FOUND, details={"message_id": message_id})


class MessageTooOldToEditException(ConflictException):
    def __init__(self, message_id: int | None, window_minutes: int):
        super().__init__(
            f"Messages can only be edited within {window_minutes} minutes",
            code=BusinessCode.MESSAGE_TOO_OLD_TO_EDIT,
            details={"message_id": message_id, "window_minutes": window_minutes},
        )


class NotificationNotFoundException(NotFoundException):
    def __init__(self, notification_id: int):
        super().__init__(
            "Notification not found",
            code=BusinessCode.NOTIFICATION_NOT_FOUND,
            details={"notification_id": notification_id},
        )


class UserNotFoundException(NotFoundException):
    def __init__(self, user_id: Optional[int] = None):
        details = {"user_id": user_id} if user_id is not None else None
        super().__init__("User not found", code=BusinessCode.USER_NOT_FOUND, details=details)
