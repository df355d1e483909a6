from .base import *  # noqa: F403
from .base import LOGGING
from .base import env

# GENERAL
# ------------------------------------------------------------------------------
# https://docs.djangoproject.com/en/dev/ref/settings/#debug
DEBUG = True
# https://docs.djangoproject.com/en/dev/ref/settings/#secret-key
SECRET_KEY = env(
    "DJANGO_SECRET_KEY",
    default="sUOPm1I4Bq7Cu4yzPnQHdNJzB9dq1KEZXVvPClq5TGGNLlqjbbQNIsMbkX2zhWsj",
)
# https://docs.djangoproject.com/en/dev/ref/settings/#allowed-hosts
ALLOWED_HOSTS = ["localhost", "0.0.0.0", "127.0.0.1"]  # noqa: S104

# LOGGING
# ------------------------------------------------------------------------------
LOGGING["loggers"]["chat_relay"]["level"] = env(  # type: ignore[index]
    "CHAT_RELAY_LOG_LEVEL",
    default="DEBUG",
)
