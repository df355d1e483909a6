"""Message REST endpoints.

History reads and message mutations for clients that are not (or not yet)
connected over Socket.IO. Mutations go through the same service functions
as the socket events and are published to online participants once the
transaction commits.
"""

from __future__ import annotations

import contextlib

from django.db import transaction
from django.db.models import Q
from drf_spectacular.utils import OpenApiParameter
from drf_spectacular.utils import extend_schema
from rest_framework import exceptions
from rest_framework import status
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.viewsets import GenericViewSet

from chat_relay.chat import services
from chat_relay.chat.exceptions import NotFoundError
from chat_relay.chat.exceptions import PermissionDenied
from chat_relay.chat.exceptions import ValidationError
from chat_relay.chat.models import Message
from chat_relay.realtime.events.chat import publish_message_deleted
from chat_relay.realtime.events.chat import publish_message_edited
from chat_relay.realtime.events.chat import publish_reaction_updated

from .serializers import HistoryQuerySerializer
from .serializers import MessageEditSerializer
from .serializers import MessageSerializer
from .serializers import ReactionSerializer
from .serializers import ReactionToggleSerializer


@contextlib.contextmanager
def _translate_errors():
    """Map store errors onto DRF responses (404/403/400)."""
    try:
        yield
    except NotFoundError as exc:
        raise exceptions.NotFound(exc.message) from exc
    except PermissionDenied as exc:
        raise exceptions.PermissionDenied(exc.message) from exc
    except ValidationError as exc:
        raise exceptions.ValidationError({"detail": exc.message}) from exc


class MessageViewSet(GenericViewSet):
    """Messages of the authenticated user's conversations.

    - list: history with one other user (`?with=<userId>&limit=`)
    - retrieve: one message the user takes part in
    - react: toggle an emoji reaction
    - partial_update: edit own message text
    - destroy: tombstone own message
    """

    permission_classes = [IsAuthenticated]
    serializer_class = MessageSerializer

    def get_queryset(self):
        if getattr(self, "swagger_fake_view", False):
            return Message.objects.none()
        user = self.request.user
        return (
            Message.objects.filter(Q(sender=user) | Q(receiver=user))
            .select_related("sender")
            .prefetch_related("reactions")
        )

    @extend_schema(
        parameters=[
            OpenApiParameter("with", int, required=True),
            OpenApiParameter("limit", int, required=False),
        ],
    )
    def list(self, request, *args, **kwargs):
        query = HistoryQuerySerializer(
            data={
                "with_user": request.query_params.get("with"),
                **(
                    {"limit": request.query_params["limit"]}
                    if "limit" in request.query_params
                    else {}
                ),
            }
        )
        query.is_valid(raise_exception=True)
        with _translate_errors():
            conversation_id, messages = services.get_history_between(
                request.user.pk,
                query.validated_data["with_user"],
                query.validated_data.get("limit"),
            )
        data = MessageSerializer(messages, many=True).data
        return Response({"conversationId": conversation_id, "messages": data})

    def retrieve(self, request, *args, **kwargs):
        return Response(MessageSerializer(self.get_object()).data)

    @extend_schema(request=ReactionToggleSerializer)
    @action(detail=True, methods=["post"])
    def react(self, request, pk=None):
        message = self.get_object()
        serializer = ReactionToggleSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        emoji = serializer.validated_data["emoji"]
        with _translate_errors():
            result = services.toggle_reaction(message.pk, request.user.pk, emoji)
        transaction.on_commit(
            lambda: publish_reaction_updated(result, request.user.pk, emoji)
        )
        return Response(
            {
                "messageId": message.pk,
                "action": result.action,
                "reactions": ReactionSerializer(result.reactions, many=True).data,
            }
        )

    @extend_schema(request=MessageEditSerializer)
    def partial_update(self, request, *args, **kwargs):
        message = self.get_object()
        serializer = MessageEditSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        with _translate_errors():
            edited = services.edit_message(
                message.pk, request.user.pk, serializer.validated_data["text"]
            )
        transaction.on_commit(lambda: publish_message_edited(edited, request.user.pk))
        return Response(MessageSerializer(edited).data)

    def destroy(self, request, *args, **kwargs):
        message = self.get_object()
        with _translate_errors():
            deleted = services.tombstone_message(message.pk, request.user.pk)
        transaction.on_commit(
            lambda: publish_message_deleted(deleted, request.user.pk)
        )
        return Response(MessageSerializer(deleted).data, status=status.HTTP_200_OK)
