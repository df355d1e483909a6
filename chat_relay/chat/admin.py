from django.contrib import admin

from chat_relay.chat import models


class MessageReactionInline(admin.TabularInline):
    model = models.MessageReaction
    extra = 0


@admin.register(models.Message)
class MessageAdmin(admin.ModelAdmin):
    list_display = [
        "id",
        "conversation_id",
        "sender",
        "receiver",
        "message_type",
        "is_edited",
        "is_deleted",
        "created_at",
    ]
    search_fields = ["conversation_id", "text", "file_name"]
    list_filter = ["message_type", "is_read", "is_edited", "is_deleted", "created_at"]
    inlines = [MessageReactionInline]
