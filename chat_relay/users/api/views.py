from drf_spectacular.utils import extend_schema
from drf_spectacular.utils import extend_schema_view
from rest_framework import status
from rest_framework.decorators import action
from rest_framework.mixins import RetrieveModelMixin
from rest_framework.response import Response
from rest_framework.viewsets import GenericViewSet

from chat_relay.users.models import User

from .serializers import UserSerializer


@extend_schema_view(retrieve=extend_schema(tags=["Users"]))
class UserViewSet(RetrieveModelMixin, GenericViewSet):
    """Chat profiles: what a peer sees before opening a conversation."""

    serializer_class = UserSerializer
    queryset = User.objects.filter(is_active=True)

    @action(detail=False)
    def me(self, request):
        serializer = UserSerializer(request.user, context={"request": request})
        return Response(status=status.HTTP_200_OK, data=serializer.data)
