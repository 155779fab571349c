import logging

from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler

from apps.blockchain.exceptions import ChainConfigurationError, ChainError, TicketNotFound

logger = logging.getLogger(__name__)


def _sync_error_response(exc):
    if isinstance(exc, TicketNotFound):
        code = status.HTTP_404_NOT_FOUND
    elif isinstance(exc, ChainConfigurationError):
        logger.error("Blockchain is misconfigured: %s", exc)
        code = status.HTTP_503_SERVICE_UNAVAILABLE
    elif isinstance(exc, ChainError):
        logger.warning("Blockchain request failed: %s", exc)
        code = status.HTTP_502_BAD_GATEWAY
    else:
        return None
    return Response({"detail": str(exc), "error": str(exc), "status_code": code}, status=code)


def custom_exception_handler(exc, context):
    """
    Attach status code and a machine-friendly code field to responses.
    Blockchain sync errors become 404 / 502 / 503 instead of a bare 500.
    """
    response = exception_handler(exc, context)
    if response is None:
        return _sync_error_response(exc)
    if isinstance(response.data, dict):
        response.data.setdefault("status_code", response.status_code)
        # attach error code if available
        if "detail" in response.data:
            response.data["error"] = str(response.data["detail"])
    return response
