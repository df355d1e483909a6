from __future__ import annotations

from rest_framework import serializers

from chat_relay.chat.models import Message
from chat_relay.chat.models import MessageReaction


class ReactionSerializer(serializers.ModelSerializer[MessageReaction]):
    userId = serializers.IntegerField(source="user_id", read_only=True)  # noqa: N815
    createdAt = serializers.DateTimeField(source="created_at", read_only=True)  # noqa: N815

    class Meta:
        model = MessageReaction
        fields = ("userId", "emoji", "createdAt")
        read_only_fields = fields


class MessageSerializer(serializers.ModelSerializer[Message]):
    """Wire shape shared by socket events and the REST API.

    ``senderName``/``senderPic`` come from the sender row at read time, so a
    renamed user shows the new name in old threads.
    """

    senderId = serializers.IntegerField(source="sender_id", read_only=True)  # noqa: N815
    receiverId = serializers.IntegerField(source="receiver_id", read_only=True)  # noqa: N815
    senderName = serializers.CharField(source="sender.display_name", read_only=True)  # noqa: N815
    senderPic = serializers.CharField(source="sender.profile_pic", read_only=True)  # noqa: N815
    conversationId = serializers.CharField(source="conversation_id", read_only=True)  # noqa: N815
    messageType = serializers.CharField(source="message_type", read_only=True)  # noqa: N815
    fileUrl = serializers.CharField(source="file_url", read_only=True)  # noqa: N815
    fileName = serializers.CharField(source="file_name", read_only=True)  # noqa: N815
    fileSize = serializers.IntegerField(source="file_size", read_only=True)  # noqa: N815
    replyTo = serializers.IntegerField(source="reply_to_id", read_only=True)  # noqa: N815
    reactions = ReactionSerializer(many=True, read_only=True)
    isRead = serializers.BooleanField(source="is_read", read_only=True)  # noqa: N815
    isEdited = serializers.BooleanField(source="is_edited", read_only=True)  # noqa: N815
    editedAt = serializers.DateTimeField(source="edited_at", read_only=True)  # noqa: N815
    isDeleted = serializers.BooleanField(source="is_deleted", read_only=True)  # noqa: N815
    deletedAt = serializers.DateTimeField(source="deleted_at", read_only=True)  # noqa: N815
    createdAt = serializers.DateTimeField(source="created_at", read_only=True)  # noqa: N815

    class Meta:
        model = Message
        fields = (
            "id",
            "senderId",
            "receiverId",
            "senderName",
            "senderPic",
            "conversationId",
            "text",
            "messageType",
            "fileUrl",
            "fileName",
            "fileSize",
            "replyTo",
            "reactions",
            "isRead",
            "isEdited",
            "editedAt",
            "isDeleted",
            "deletedAt",
            "createdAt",
        )
        read_only_fields = fields


class HistoryQuerySerializer(serializers.Serializer):
    with_user = serializers.IntegerField(min_value=1)
    limit = serializers.IntegerField(min_value=1, required=False)


class ReactionToggleSerializer(serializers.Serializer):
    emoji = serializers.CharField(max_length=32)


class MessageEditSerializer(serializers.Serializer):
    text = serializers.CharField(trim_whitespace=True)
