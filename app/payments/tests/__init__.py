"""
Tests for payments app.

This package contains test modules for:
- test_models.py: Payment and WebhookEvent model tests
- test_refund_policy.py: Refund tier calculations
- test_escrow_ledger.py: EscrowLedger tests
- test_settlement.py: SettlementCoordinator tests
- test_views.py: API endpoint tests
- test_integration.py: Negotiation-to-payout journeys

Usage:
    pytest payments/tests/
    pytest payments/tests/test_escrow_ledger.py
"""
