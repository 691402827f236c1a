"""
Payments app: escrow settlement for accepted offers.

This app handles:
- Stripe Checkout Sessions that fund escrow
- Escrow release and provider payouts
- Cancellation refunds by policy tier
- Webhook event storage and processing

Related apps:
    - offers: The accepted offer a payment settles
    - jobs: Job request status follows the payment
    - notifications: Settlement event notifications

Usage:
    from payments.services import EscrowLedger, SettlementCoordinator

    checkout = EscrowLedger().create_escrow_checkout(offer.id, seeker, amount)
    SettlementCoordinator().complete_service(payment.id, seeker)
"""
