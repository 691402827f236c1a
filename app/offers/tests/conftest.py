"""
Pytest fixtures for offer tests.

Offers are built by OfferFactory traits in the state each test needs;
the seeker/provider/outsider users come from the root conftest.

Usage:
    def test_confirm(machine, negotiated_offer, provider):
        machine.confirm(negotiated_offer.id, provider)
"""

from unittest.mock import MagicMock

import pytest

from jobs.tests.factories import JobRequestFactory
from offers.models import Offer
from offers.negotiation import NegotiationStateMachine
from offers.states import OfferStatus
from offers.tests.factories import OfferFactory


def get_fresh_offer(offer_id) -> Offer:
    """
    Re-read an offer from the database.

    django-fsm's protected status field rejects refresh_from_db(), so tests
    fetch a new instance instead.
    """
    return Offer.objects.get(id=offer_id)


# =============================================================================
# Job & Offer Fixtures
# =============================================================================


@pytest.fixture
def job(db, seeker):
    return JobRequestFactory(seeker=seeker)


@pytest.fixture
def offer(db, job, provider):
    """Pending bid with no negotiated terms."""
    return OfferFactory(job_request=job, provider=provider)


@pytest.fixture
def negotiated_offer(db, job, provider):
    """Negotiating offer with every term filled in, nobody confirmed."""
    return OfferFactory(job_request=job, provider=provider, negotiated=True, status=OfferStatus.NEGOTIATING)


@pytest.fixture
def agreed_offer(db, job, provider):
    return OfferFactory(job_request=job, provider=provider, agreed=True)


@pytest.fixture
def accepted_offer(db, job, provider):
    from jobs.models import JobRequestStatus

    job.status = JobRequestStatus.ASSIGNED
    job.assigned_to = provider
    job.save()
    return OfferFactory(job_request=job, provider=provider, accepted=True)


# =============================================================================
# Collaborators
# =============================================================================


@pytest.fixture
def mock_notifications():
    return MagicMock()


@pytest.fixture
def mock_realtime():
    return MagicMock()


@pytest.fixture
def machine(mock_notifications, mock_realtime):
    """State machine with recorded notifications and realtime pushes."""
    return NegotiationStateMachine(notifications=mock_notifications, realtime=mock_realtime)
