import hashlib
import hmac
from django.conf import settings


def sign_payload(payload: str) -> str:
    """HMAC-SHA256 of an outgoing postback body, keyed by EVENTS_WEBHOOK_SECRET."""
    secret = getattr(settings, "EVENTS_WEBHOOK_SECRET", "")
    return hmac.new(secret.encode(), payload.encode(), hashlib.sha256).hexdigest()
