from rest_framework.routers import DefaultRouter
from .views import EventViewSet, TicketViewSet

router = DefaultRouter()
router.register(r"events", EventViewSet, basename="events")
router.register(r"tickets", TicketViewSet, basename="tickets")


urlpatterns = router.urls
