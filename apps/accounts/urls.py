from rest_framework.routers import SimpleRouter

from .views import RegisterView, UserViewSet

router = SimpleRouter()

# Auth (registration via ViewSet create; login is the JWT create endpoint)
router.register(r"auth/register", RegisterView, basename="auth-register")
router.register(r"users", UserViewSet, basename="users")

urlpatterns = router.urls
