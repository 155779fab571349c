import json
import logging

import requests
from django.conf import settings
from django.core.serializers.json import DjangoJSONEncoder

from apps.events import services as ticket_store
from apps.events.models import Ticket
from apps.events.utils import sign_payload

logger = logging.getLogger(__name__)


def build_confirmation_payload(ticket):
    event = ticket.event
    company = event.company if event else None
    return {
        "ticket": {
            "id": str(ticket.id),
            "externalId": ticket.external_id,
            "name": ticket.name,
            "description": ticket.description,
            "rarity": ticket.rarity,
            "bannerUrl": ticket.banner_url,
            "amount": ticket.amount,
            "seat": ticket.seat,
            "sector": ticket.sector,
            "status": ticket.status,
            "tokenId": ticket.token_id,
            "txHash": ticket.tx_hash,
            "createdAt": ticket.created_at,
            "updatedAt": ticket.updated_at,
        },
        "event": {
            "id": str(event.id),
            "name": event.title,
            "description": event.description,
            "startDate": event.start_at,
            "endDate": event.end_at,
            "company": {
                "id": str(company.id),
                "name": company.name,
                "email": company.email,
            } if company else None,
        } if event else None,
        "user": {
            "id": str(ticket.owner.id),
            "email": ticket.owner.email,
            "walletAddress": ticket.owner.wallet_address,
        },
    }


def send_confirmation_webhook(ticket_id):
    """POST the minted ticket to its event's postback URL. Best effort: never raises."""
    try:
        ticket = ticket_store.get_ticket_for_sync(ticket_id)
    except Ticket.DoesNotExist:
        logger.error("Ticket %s not found for confirmation webhook", ticket_id)
        return False

    url = ticket.event.postback_url if ticket.event else None
    if not url:
        logger.info("Event of ticket %s has no postback_url, skipping webhook", ticket_id)
        return False

    body = json.dumps(build_confirmation_payload(ticket), cls=DjangoJSONEncoder)
    headers = {"Content-Type": "application/json"}
    secret = getattr(settings, "EVENTS_WEBHOOK_SECRET", "")
    if secret:
        headers["X-Signature"] = sign_payload(body)

    try:
        response = requests.post(url, data=body, headers=headers, timeout=getattr(settings, "WEBHOOK_TIMEOUT", 10))
    except requests.RequestException as exc:
        logger.error("Webhook to %s failed for ticket %s: %s", url, ticket_id, exc)
        return False

    if not 200 <= response.status_code < 300:
        logger.error(
            "Webhook to %s answered %s for ticket %s: %s",
            url,
            response.status_code,
            ticket_id,
            response.text[:500],
        )
        return False

    logger.info("Webhook delivered to %s for ticket %s (%s)", url, ticket_id, response.status_code)
    return True
