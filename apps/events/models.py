import datetime
import secrets

from django.conf import settings
from django.db import models
from django.utils import timezone

from apps.accounts.models import BaseEntity


def generate_external_id():
    return secrets.token_hex(16)


class Event(BaseEntity):
    company = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        related_name="events",
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
    )
    title = models.CharField(max_length=400)
    description = models.TextField(blank=True)

    start_at = models.DateTimeField()
    end_at = models.DateTimeField(null=True, blank=True)

    # notified after each ticket of this event is minted
    postback_url = models.URLField(max_length=500, null=True, blank=True)
    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ["-start_at"]

    def __str__(self):
        return f"{self.title} ({self.start_at.date()})"

    def has_started(self, now=None):
        return self.start_at <= (now or timezone.now())


class TicketQuerySet(models.QuerySet):
    def alive(self):
        return self.filter(is_deleted=False)

    def pending_mint(self, now=None):
        """Tickets the sweep may mint: valid, never minted, start date reached. Oldest first."""
        return (
            self.alive()
            .filter(status=Ticket.Status.VALID, token_id__isnull=True, start_at__lte=now or timezone.now())
            .order_by("start_at")
        )

    def minted(self):
        return self.filter(token_id__isnull=False)


class Ticket(BaseEntity):
    class Status(models.TextChoices):
        VALID = "valid", "Valid"
        CANCELED = "canceled", "Canceled"
        MINTED = "minted", "Minted"

    class Rarity(models.TextChoices):
        COMMON = "common", "Common"
        RARE = "rare", "Rare"
        EPIC = "epic", "Epic"
        LEGENDARY = "legendary", "Legendary"

    event = models.ForeignKey(Event, related_name="tickets", null=True, blank=True, on_delete=models.CASCADE)
    owner = models.ForeignKey(settings.AUTH_USER_MODEL, related_name="tickets", on_delete=models.PROTECT)

    external_id = models.CharField(max_length=64, unique=True, default=generate_external_id, editable=False)
    name = models.CharField(max_length=255)
    description = models.TextField(null=True, blank=True)
    banner_url = models.URLField(max_length=500, null=True, blank=True)
    amount = models.PositiveIntegerField(default=1)
    seat = models.CharField(max_length=64, null=True, blank=True)
    sector = models.CharField(max_length=64, null=True, blank=True)

    rarity = models.CharField(max_length=16, choices=Rarity.choices, default=Rarity.COMMON)
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.VALID, db_index=True)
    start_at = models.DateTimeField(db_index=True)

    # written once, together, by the blockchain sync engine
    token_id = models.CharField(max_length=78, unique=True, null=True, blank=True)
    tx_hash = models.CharField(max_length=66, null=True, blank=True)

    objects = TicketQuerySet.as_manager()

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["status", "start_at"], name="ticket_status_start_idx"),
        ]

    def __str__(self):
        return f"{self.name} [{self.status}]"

    @property
    def is_minted(self):
        return self.status == self.Status.MINTED

    def mint_wait(self, now=None):
        """Time left before the ticket may be minted; zero once eligible."""
        remaining = self.start_at - (now or timezone.now())
        return max(remaining, datetime.timedelta(0))
