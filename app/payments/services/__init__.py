"""
Payment services for escrow settlement.

This module provides:
- EscrowLedger: Checkout, escrow, release, payout and refund of a Payment
- SettlementCoordinator: Cross-entity settlement events (funding, completion,
  cancellation) with post-commit notifications

Usage:
    from payments.services import EscrowLedger, SettlementCoordinator

    checkout = EscrowLedger().create_escrow_checkout(offer.id, seeker, amount)

    coordinator = SettlementCoordinator()
    coordinator.complete_service(payment.id, seeker)
"""

from payments.services.escrow_ledger import (
    EscrowCheckout,
    EscrowLedger,
    EscrowRequest,
    load_payment,
)
from payments.services.settlement import (
    CancellationOutcome,
    SettlementCoordinator,
)

__all__ = [
    "CancellationOutcome",
    "EscrowCheckout",
    "EscrowLedger",
    "EscrowRequest",
    "SettlementCoordinator",
    "load_payment",
]
