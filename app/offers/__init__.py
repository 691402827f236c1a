"""
Offers application.

A provider's bid on a job request, the negotiation of its terms and the
two-party confirmation protocol that leads to acceptance.

Modules:
    states: Offer status and sub-status enums
    models: Offer and NegotiationHistoryEntry
    history: Typed negotiation history records
    negotiation: NegotiationStateMachine (update/confirm/reset/accept/reject)
    services: OfferService (create/update/withdraw and read paths)
    views: OfferViewSet (HTTP surface)
"""
