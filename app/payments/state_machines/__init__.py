"""
State machine enums for payment models.
"""

from payments.state_machines.states import (
    EscrowStatus,
    PaymentStatus,
    PaymentType,
    PayoutStatus,
    WebhookEventStatus,
)

__all__ = [
    "EscrowStatus",
    "PaymentStatus",
    "PaymentType",
    "PayoutStatus",
    "WebhookEventStatus",
]
