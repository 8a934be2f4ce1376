"""
System message templates and quick replies
"""
from __future__ import annotations

from typing import Any

from domain.common.exceptions import DomainValidationException


def _money(amount: int) -> str:
    return f"{amount / 100:.2f}"


# name -> (content template, action)
SYSTEM_TEMPLATES: dict[str, tuple[str, str]] = {
    "booking.created": ("Booking #{booking_id} has been created. Please wait for artisan confirmation.", "booking_created"),
    "booking.accepted": ("Booking #{booking_id} has been accepted. Your service is confirmed.", "booking_accepted"),
    "booking.started": ("Service for booking #{booking_id} has started.", "booking_started"),
    "booking.completed": ("Service for booking #{booking_id} has been completed. Please leave a review.", "booking_completed"),
    "booking.cancelled": ("Booking #{booking_id} has been cancelled. Reason: {reason}", "booking_cancelled"),
    "payment.received": ("Payment of ${amount} has been received.", "payment_received"),
    "payment.refunded": ("Refund of ${amount} has been processed.", "payment_refunded"),
    "payment.disputed": ("A payment dispute has been opened.", "payment_disputed"),
}

QUICK_REPLIES: dict[str, list[str]] = {
    "artisan": [
        "I will be there soon.",
        "I am running a bit late.",
        "I have arrived at the location.",
        "Could you provide more details?",
        "The job is completed.",
        "Thank you for your business!",
    ],
    "user": [
        "When will you arrive?",
        "Here is my exact location.",
        "Please let me know when you are close.",
        "I need to reschedule.",
        "Thank you for the service!",
    ],
}


def render_system_message(template: str, **context: Any) -> tuple[str, dict[str, Any]]:
    """Return (content, metadata) for a system template."""
    try:
        text, action = SYSTEM_TEMPLATES[template]
    except KeyError:
        raise DomainValidationException(f"Unknown system template: {template}", field="template") from None
    values = dict(context)
    if "amount" in values and isinstance(values["amount"], int):
        values["amount"] = _money(values["amount"])
    values.setdefault("reason", "not specified")
    metadata = {k: v for k, v in context.items() if v is not None}
    metadata["action"] = action
    return text.format(**values), metadata


def quick_reply(role: str, index: int) -> str:
    replies = QUICK_REPLIES.get(role) or QUICK_REPLIES["user"]
    if index < 0 or index >= len(replies):
        raise DomainValidationException(f"Quick reply index out of range: {index}", field="index")
    return replies[index]
