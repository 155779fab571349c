import logging
from datetime import timedelta

from celery import shared_task
from celery.signals import worker_process_init
from django.apps import apps as django_apps
from django.conf import settings
from django.utils import timezone
from django.utils.dateparse import parse_datetime

from .exceptions import ChainConfigurationError, ContractError, TicketNotFound
from .services import MintStatus, get_sync_engine

logger = logging.getLogger(__name__)

MAX_RETRY_COUNTDOWN = 3600


@worker_process_init.connect
def reset_chain_client(**kwargs):
    # forked worker processes must not share the parent's HTTP session
    django_apps.get_app_config("blockchain").reset_chain_client()


@shared_task
def process_pending_tickets(limit=None):
    """Periodic sweep over every ticket that is due for minting."""
    summary = get_sync_engine().process_all_pending(limit=limit)
    logger.info("Blockchain sync sweep finished: %s", summary)
    return summary


@shared_task(bind=True, max_retries=3, default_retry_delay=60)
def sync_ticket(self, ticket_id):
    """Mint one ticket. Transient chain failures are retried with exponential backoff."""
    try:
        outcome = get_sync_engine().mint_if_eligible(ticket_id)
    except (ChainConfigurationError, TicketNotFound, ContractError) as exc:
        # retrying cannot fix these; the periodic sweep picks the ticket up again once fixed
        logger.error("Sync of ticket %s failed permanently: %s", ticket_id, exc)
        raise
    except Exception as exc:
        countdown = min(60 * 2 ** self.request.retries, MAX_RETRY_COUNTDOWN)
        logger.warning(
            "Sync of ticket %s failed (attempt %s), retrying in %ss: %s",
            ticket_id,
            self.request.retries + 1,
            countdown,
            exc,
        )
        raise self.retry(exc=exc, countdown=countdown)

    result = {"ticket_id": str(ticket_id), **outcome.as_dict()}
    if outcome.status == MintStatus.NOT_YET_ELIGIBLE:
        result.update(success=False, reason="not_ready", detail=outcome.reason)
    elif outcome.status == MintStatus.REJECTED:
        logger.warning("Ticket %s was not minted: %s", ticket_id, outcome.reason)
        result.update(success=False, reason="rejected", detail=outcome.reason)
    else:
        result["success"] = True
    return result


@shared_task
def schedule_ticket_minting(ticket_id, event_end_at=None):
    """Queue the mint of a ticket for shortly after its event ends.

    `event_end_at` may be a datetime or an ISO 8601 string; without it the mint is
    queued immediately. Returns the countdown in seconds.
    """
    countdown = 0
    if event_end_at:
        end = parse_datetime(event_end_at) if isinstance(event_end_at, str) else event_end_at
        if end is None:
            raise ValueError(f"Invalid event end date: {event_end_at!r}")
        if timezone.is_naive(end):
            end = timezone.make_aware(end)
        delay = timedelta(seconds=getattr(settings, "BLOCKCHAIN_MINT_DELAY_AFTER_EVENT_END", 180))
        countdown = max(0, int((end + delay - timezone.now()).total_seconds()))

    sync_ticket.apply_async(args=[str(ticket_id)], countdown=countdown)
    logger.info("Scheduled mint of ticket %s in %ss", ticket_id, countdown)
    return countdown
