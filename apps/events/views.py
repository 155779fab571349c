# events/views.py
from django.db.models import Q
from drf_spectacular.utils import OpenApiResponse, extend_schema
from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from apps.blockchain.services import get_reconciler, get_sync_engine
from common import permissions as perms

from . import models, serializers as srl, services


# ---------------------------------------------------------------------
# Event management (CRUD + deactivate)
# ---------------------------------------------------------------------
class EventViewSet(viewsets.ModelViewSet):
    """
    Event management endpoints.

    Companies manage their own events; staff see every event. Ticket holders can
    read the events they hold tickets for. DELETE is a soft delete.
    """
    serializer_class = srl.EventSerializer
    permission_classes = [perms.IsCompanyOrStaff, perms.IsEventCompanyOrStaff]
    filterset_fields = ["is_active"]
    search_fields = ["title", "description"]
    ordering_fields = ["start_at", "created_at"]

    def get_queryset(self):
        qs = models.Event.objects.filter(is_deleted=False).select_related("company")
        user = self.request.user
        if user.is_staff:
            return qs
        return qs.filter(Q(company=user) | Q(tickets__owner=user)).distinct()

    def perform_create(self, serializer):
        serializer.save(company=self.request.user)

    def perform_destroy(self, instance):
        instance.soft_delete()

    @extend_schema(
        operation_id="deactivateEvent",
        description="Stop issuing tickets for this event (company-only). Existing tickets are kept.",
        request=None,
        responses={200: srl.EventSerializer},
    )
    @action(detail=True, methods=["post"])
    def deactivate(self, request, pk=None):
        event = self.get_object()
        event.is_active = False
        event.save(update_fields=["is_active", "updated_at"])
        return Response(self.get_serializer(event).data)


# ---------------------------------------------------------------------
# Tickets (issue, list, cancel, mint, verify)
# ---------------------------------------------------------------------
class TicketViewSet(
    mixins.CreateModelMixin,
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    viewsets.GenericViewSet,
):
    """
    Ticketing endpoints.

    Features:
    - companies issue tickets for their events, addressed to the holder's email
    - holders list and read their own tickets
    - `sync` mints a ticket on chain right away instead of waiting for the sweep
    - `verify` compares the ticket with the token the contract holds
    """
    serializer_class = srl.TicketSerializer
    permission_classes = [perms.IsCompanyOrStaff, perms.IsEventCompanyOrStaff]
    filterset_fields = ["status", "event"]
    search_fields = ["name", "external_id", "token_id"]
    ordering_fields = ["start_at", "created_at"]

    def get_queryset(self):
        qs = models.Ticket.objects.alive().select_related("owner", "event")
        user = self.request.user
        if user.is_staff:
            return qs
        return qs.filter(Q(owner=user) | Q(event__company=user))

    @extend_schema(
        operation_id="cancelTicket",
        description="Cancel a ticket that has not been minted yet (company-only).",
        request=None,
        responses={200: srl.TicketSerializer, 409: OpenApiResponse(description="Ticket is minted or already canceled")},
    )
    @action(detail=True, methods=["post"])
    def cancel(self, request, pk=None):
        ticket = self.get_object()
        if not services.cancel_ticket(ticket.id):
            ticket.refresh_from_db()
            return Response(
                {"error": f"Ticket cannot be canceled (status: {ticket.status})", "status_code": 409},
                status=status.HTTP_409_CONFLICT,
            )
        ticket.refresh_from_db()
        return Response(self.get_serializer(ticket).data)

    @extend_schema(
        operation_id="syncTicket",
        description=(
            "Mint the ticket now if it is eligible. Safe to call repeatedly: an already minted "
            "ticket answers `already_minted` with its token id."
        ),
        request=None,
        responses={200: srl.MintOutcomeSerializer},
    )
    @action(detail=True, methods=["post"])
    def sync(self, request, pk=None):
        ticket = self.get_object()
        outcome = get_sync_engine().mint_if_eligible(ticket.id)
        return Response(outcome.as_dict())

    @extend_schema(
        operation_id="verifyTicket",
        description="Compare the ticket row with the on-chain token (owner, ticket code, event id).",
        responses={200: OpenApiResponse(description="Verification result")},
    )
    @action(detail=True, methods=["get"])
    def verify(self, request, pk=None):
        ticket = self.get_object()
        result = get_reconciler().verify_by_id(ticket.id)
        return Response(result.as_dict())
