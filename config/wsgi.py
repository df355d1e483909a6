"""
WSGI entry point for the REST API and admin only.

The Socket.IO relay is asynchronous and is served by ``config.asgi``.
"""

import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault(
    "DJANGO_SETTINGS_MODULE",
    "config.settings.local"
    if os.environ.get("BUILD_ENV", "production").lower() == "local"
    else "config.settings.production",
)

application = get_wsgi_application()
