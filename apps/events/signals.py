import logging

from django.conf import settings
from django.db import transaction
from django.db.models.signals import post_save
from django.dispatch import receiver

from apps.blockchain.tasks import schedule_ticket_minting

from . import models

logger = logging.getLogger(__name__)


@receiver(post_save, sender=models.Ticket)
def on_ticket_created(sender, instance, created, **kwargs):
    if not created or not getattr(settings, "BLOCKCHAIN_SCHEDULE_ON_CREATE", True):
        return

    ticket_id = str(instance.id)
    end_at = instance.event.end_at if instance.event_id else None

    def _schedule():
        try:
            schedule_ticket_minting.delay(ticket_id, end_at.isoformat() if end_at else None)
        except Exception:
            # broker down: the periodic sweep still mints the ticket
            logger.exception("Could not schedule mint of ticket %s", ticket_id)

    transaction.on_commit(_schedule)
