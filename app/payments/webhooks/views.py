"""
Stripe webhook receiver.

The view:
1. Verifies the Stripe-Signature header
2. Stores the event as a WebhookEvent (unique per Stripe event ID)
3. Queues process_webhook_event and returns immediately

Stripe expects a 2xx within 20 seconds, so all settlement work happens in
the Celery task.
"""

from __future__ import annotations

import logging

from django.db import transaction
from django.http import HttpRequest, HttpResponse, JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_POST

from payments.adapters import StripeAdapter
from payments.exceptions import StripeInvalidRequestError
from payments.models import WebhookEvent
from payments.state_machines import WebhookEventStatus
from payments.tasks import process_webhook_event

logger = logging.getLogger(__name__)


@csrf_exempt
@require_POST
def stripe_webhook(request: HttpRequest) -> HttpResponse:
    """
    Receive and queue Stripe webhook events.

    Redelivered events that were already processed are acknowledged
    without being queued again; events still pending or failed are
    re-queued.

    Returns:
        200 {"received": true} for accepted events (new or duplicate)
        400 for a missing or invalid signature or a malformed event
    """
    payload = request.body
    signature = request.headers.get("Stripe-Signature", "")

    if not signature:
        logger.warning("Webhook received without Stripe-Signature header")
        return HttpResponse("Missing signature", status=400)

    try:
        event_data = StripeAdapter.verify_webhook_signature(payload, signature)
    except StripeInvalidRequestError as e:
        logger.warning("Webhook signature verification failed", extra={"error": str(e)})
        return HttpResponse(f"Webhook Error: {e.message}", status=400)

    stripe_event_id = event_data.get("id")
    event_type = event_data.get("type")

    if not stripe_event_id or not event_type:
        logger.warning("Webhook missing required fields")
        return HttpResponse("Invalid event", status=400)

    logger.info(
        f"Received Stripe webhook: {event_type}",
        extra={"stripe_event_id": stripe_event_id, "event_type": event_type},
    )

    webhook_event, created = WebhookEvent.objects.get_or_create(
        stripe_event_id=stripe_event_id,
        defaults={
            "event_type": event_type,
            "payload": event_data,
            "status": WebhookEventStatus.PENDING,
        },
    )

    if not created and webhook_event.is_processed:
        logger.info(
            "Webhook already processed, returning success",
            extra={"stripe_event_id": stripe_event_id},
        )
        return JsonResponse({"received": True, "duplicate": True})

    webhook_event_id = str(webhook_event.id)
    transaction.on_commit(lambda: process_webhook_event.delay(webhook_event_id))

    logger.info(
        "Webhook queued for processing",
        extra={"stripe_event_id": stripe_event_id, "webhook_event_id": webhook_event_id},
    )
    return JsonResponse({"received": True})
