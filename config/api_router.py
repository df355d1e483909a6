from django.conf import settings
from rest_framework.routers import DefaultRouter
from rest_framework.routers import SimpleRouter

from chat_relay.chat.api.views import MessageViewSet
from chat_relay.users.api.views import UserViewSet

router = DefaultRouter() if settings.DEBUG else SimpleRouter()

router.register("users", UserViewSet)
router.register("messages", MessageViewSet, basename="messages")


app_name = "api"
urlpatterns = router.urls
