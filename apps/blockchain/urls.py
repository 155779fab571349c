from django.urls import path
from rest_framework.routers import SimpleRouter

from .views import ConfirmationWebhookView, SyncViewSet

router = SimpleRouter()
router.register(r"sync", SyncViewSet, basename="sync")

urlpatterns = [
    path("webhooks/confirmation/", ConfirmationWebhookView.as_view(), name="webhook-confirmation"),
] + router.urls
