import logging

from django.utils import timezone
from drf_spectacular.utils import OpenApiResponse, extend_schema
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import AllowAny, IsAdminUser
from rest_framework.response import Response
from rest_framework.views import APIView

from . import serializers as srl
from .services import get_sync_engine
from .tasks import process_pending_tickets

logger = logging.getLogger(__name__)


class SyncViewSet(viewsets.ViewSet):
    """Operator endpoints for the blockchain sync sweep."""
    permission_classes = [IsAdminUser]

    @extend_schema(
        operation_id="processPendingTickets",
        description=(
            "Run one sweep over every ticket due for minting and return the summary. "
            'With `{"async": true}` the sweep is queued instead and the task id returned.'
        ),
        request=srl.ProcessRequestSerializer,
        responses={200: srl.SyncSummarySerializer, 202: OpenApiResponse(description="Sweep queued")},
    )
    @action(detail=False, methods=["post"])
    def process(self, request):
        params = srl.ProcessRequestSerializer(data=request.data)
        params.is_valid(raise_exception=True)
        limit = params.validated_data.get("limit")

        if params.validated_data["async"]:
            result = process_pending_tickets.delay(limit=limit)
            return Response({"task_id": result.id, "status": "queued"}, status=status.HTTP_202_ACCEPTED)

        summary = get_sync_engine().process_all_pending(limit=limit)
        return Response(summary)


class ConfirmationWebhookView(APIView):
    """
    Loopback receiver for mint confirmations. Point an event's postback_url here to
    check the outgoing webhook end to end.
    """
    permission_classes = [AllowAny]
    authentication_classes = []

    @extend_schema(
        operation_id="receiveMintConfirmation",
        request=None,
        responses={200: srl.ConfirmationReceiptSerializer},
    )
    def post(self, request):
        logger.info(
            "Mint confirmation received (signature %s): %s",
            request.headers.get("X-Signature", "-"),
            request.data,
        )
        return Response({"message": "Confirmation received", "received_at": timezone.now()})
