from django.conf import settings
from django.db import models
from django.utils.translation import gettext_lazy as _


class Message(models.Model):
    class Type(models.TextChoices):
        TEXT = "text", _("Text")
        IMAGE = "image", _("Image")
        FILE = "file", _("File")
        CALL_INVITE = "call-invite", _("Call invite")
        CALL_ENDED = "call-ended", _("Call ended")

    sender = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="sent_messages",
    )
    receiver = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="received_messages",
    )
    conversation_id = models.CharField(max_length=100)
    text = models.TextField(blank=True, default="")
    message_type = models.CharField(
        max_length=20, choices=Type.choices, default=Type.TEXT
    )
    file_url = models.URLField(max_length=1000, blank=True, null=True)
    file_name = models.CharField(max_length=255, blank=True, null=True)
    file_size = models.PositiveBigIntegerField(blank=True, null=True)
    # Weak reference: a reply outlives the message it quotes
    reply_to = models.ForeignKey(
        "self",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="replies",
    )
    is_read = models.BooleanField(default=False)
    is_edited = models.BooleanField(default=False)
    edited_at = models.DateTimeField(null=True, blank=True)
    is_deleted = models.BooleanField(default=False)
    deleted_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["created_at", "id"]
        indexes = [
            models.Index(
                fields=["conversation_id", "created_at"],
                name="chat_msg_conv_created_idx",
            ),
            models.Index(fields=["sender", "receiver"], name="chat_msg_pair_idx"),
        ]

    def __str__(self) -> str:  # pragma: no cover - trivial
        return f"[{self.conversation_id}] {self.sender_id} -> {self.receiver_id}"

    @property
    def participant_ids(self) -> tuple[int, int]:
        return (self.sender_id, self.receiver_id)


class MessageReaction(models.Model):
    message = models.ForeignKey(
        Message, on_delete=models.CASCADE, related_name="reactions"
    )
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="message_reactions",
    )
    emoji = models.CharField(max_length=32)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["created_at", "id"]
        constraints = [
            models.UniqueConstraint(
                fields=["message", "user", "emoji"],
                name="chat_reaction_unique_user_emoji",
            ),
        ]

    def __str__(self) -> str:  # pragma: no cover - trivial
        return f"{self.user_id} {self.emoji} on {self.message_id}"
