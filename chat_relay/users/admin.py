from django.contrib import admin
from django.contrib.auth import admin as auth_admin
from django.utils.translation import gettext_lazy as _

from chat_relay.users.models import User


@admin.register(User)
class UserAdmin(auth_admin.UserAdmin):
    fieldsets = (
        *auth_admin.UserAdmin.fieldsets,
        (_("Chat profile"), {"fields": ("name", "profile_pic", "native_language")}),
    )
    list_display = ["username", "name", "email", "native_language", "is_superuser"]
    search_fields = ["name", "username", "email"]
