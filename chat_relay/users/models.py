from django.contrib.auth.models import AbstractUser
from django.db.models import CharField
from django.db.models import EmailField
from django.db.models import URLField
from django.utils.translation import gettext_lazy as _


class User(AbstractUser):
    """
    Default custom user model for chat_relay.

    The relay only reads these fields: account issuance and profile editing
    live outside this project.
    """

    # First and last name do not cover name patterns around the globe
    name = CharField(_("Full Name"), blank=True, max_length=255)
    email = EmailField(_("email address"), unique=True)
    profile_pic = URLField(_("Profile picture"), blank=True, max_length=500)
    # BCP 47 tag, e.g. "en-US"; peers use it to set up caption translation
    native_language = CharField(_("Native language"), blank=True, max_length=35)

    @property
    def display_name(self) -> str:
        return self.name or self.get_full_name() or self.username
