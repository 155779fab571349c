from django.contrib import admin

from apps.blockchain.tasks import sync_ticket

from . import models


@admin.register(models.Event)
class EventAdmin(admin.ModelAdmin):
    list_display = ("title", "company", "start_at", "end_at", "is_active", "is_deleted")
    list_filter = ("is_active", "is_deleted")
    search_fields = ("title", "description")
    readonly_fields = ("created_at", "updated_at")


@admin.register(models.Ticket)
class TicketAdmin(admin.ModelAdmin):
    list_display = ("name", "event", "owner", "status", "rarity", "start_at", "token_id")
    list_filter = ("status", "rarity", "is_deleted")
    search_fields = ("name", "external_id", "token_id", "tx_hash", "owner__email")
    readonly_fields = ("external_id", "token_id", "tx_hash", "created_at", "updated_at")
    raw_id_fields = ("event", "owner")
    actions = ["queue_mint"]

    def queue_mint(self, request, queryset):
        ids = list(queryset.filter(status=models.Ticket.Status.VALID, token_id__isnull=True).values_list("id", flat=True))
        for ticket_id in ids:
            sync_ticket.delay(str(ticket_id))
        self.message_user(request, f"Queued {len(ids)} tickets for minting")
    queue_mint.short_description = "Queue selected tickets for minting"
