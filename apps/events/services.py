from django.core.exceptions import ValidationError
from django.db.models import Count
from django.utils import timezone

from . import models


def get_ticket_for_sync(ticket_id):
    """Load a ticket with owner, event and event company joined.

    Malformed ids raise `Ticket.DoesNotExist`, same as unknown ones.
    """
    try:
        return models.Ticket.objects.select_related("owner", "event", "event__company").get(id=ticket_id)
    except (ValidationError, ValueError):
        raise models.Ticket.DoesNotExist(f"Ticket {ticket_id} does not exist")


def commit_mint(ticket_id, token_id, tx_hash, rarity):
    """Record a successful mint. Only a still-valid, never-minted ticket is written.

    Returns True when exactly one row changed; False means another worker or the
    CRUD layer got there first.
    """
    updated = models.Ticket.objects.filter(
        id=ticket_id,
        status=models.Ticket.Status.VALID,
        token_id__isnull=True,
    ).update(
        status=models.Ticket.Status.MINTED,
        token_id=token_id,
        tx_hash=tx_hash,
        rarity=rarity,
        updated_at=timezone.now(),
    )
    return updated == 1


def pending_mint_ticket_ids(now=None, limit=10):
    qs = models.Ticket.objects.pending_mint(now or timezone.now())
    return list(qs.values_list("id", flat=True)[:limit])


def cancel_ticket(ticket_id):
    updated = models.Ticket.objects.filter(id=ticket_id, status=models.Ticket.Status.VALID).update(
        status=models.Ticket.Status.CANCELED,
        updated_at=timezone.now(),
    )
    return updated == 1


def ticket_status_counts():
    counts = {status: 0 for status in models.Ticket.Status.values}
    rows = models.Ticket.objects.alive().order_by().values("status").annotate(total=Count("id"))
    for row in rows:
        counts[row["status"]] = row["total"]
    return counts
