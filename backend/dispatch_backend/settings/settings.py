"""
Base settings for the ride dispatch backend.

Production overrides live in prod.py (loaded from .env).
"""

import os
from decimal import Decimal
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent.parent

SECRET_KEY = os.getenv("DJANGO_SECRET_KEY", "dev-insecure-dispatch-key")

DEBUG = os.getenv("DJANGO_DEBUG", "true").lower() == "true"

ALLOWED_HOSTS = ["*"]

INSTALLED_APPS = [
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    # Third party
    "corsheaders",
    "rest_framework",
    "channels",
    # Local apps
    "accounts",
    "billing",
    "rides",
    "realtime",
]

MIDDLEWARE = [
    "corsheaders.middleware.CorsMiddleware",
    "django.middleware.security.SecurityMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
]

ROOT_URLCONF = "dispatch_backend.urls"

TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [],
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.request",
                "django.contrib.auth.context_processors.auth",
                "django.contrib.messages.context_processors.messages",
            ],
        },
    },
]

ASGI_APPLICATION = "dispatch_backend.asgi.application"

DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": os.getenv("SQLITE_PATH", str(BASE_DIR / "db.sqlite3")),
    }
}

AUTH_USER_MODEL = "accounts.User"

LANGUAGE_CODE = "en-us"
TIME_ZONE = "UTC"
USE_I18N = True
USE_TZ = True

STATIC_URL = "static/"

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

CORS_ALLOW_ALL_ORIGINS = True

REST_FRAMEWORK = {
    "DEFAULT_AUTHENTICATION_CLASSES": [
        "rest_framework_simplejwt.authentication.JWTAuthentication",
        "rest_framework.authentication.SessionAuthentication",
    ],
    "DEFAULT_PERMISSION_CLASSES": [
        "rest_framework.permissions.IsAuthenticated",
    ],
}

# In-memory layer for local development and tests; prod.py switches to Redis.
CHANNEL_LAYERS = {
    "default": {
        "BACKEND": "channels.layers.InMemoryChannelLayer",
    }
}

# ---------------------- Celery ----------------------

CELERY_BROKER_URL = os.getenv("CELERY_BROKER_URL", "redis://localhost:6379/1")
CELERY_RESULT_BACKEND = os.getenv("CELERY_RESULT_BACKEND", CELERY_BROKER_URL)
CELERY_TASK_ALWAYS_EAGER = os.getenv("CELERY_TASK_ALWAYS_EAGER", "true").lower() == "true"
CELERY_BEAT_SCHEDULE = {
    "reconcile-failed-ledger-debits": {
        "task": "rides.tasks.reconcile_failed_debits_task",
        "schedule": 300.0,
    },
    "redeliver-notifications": {
        "task": "rides.tasks.redeliver_notifications_task",
        "schedule": 60.0,
    },
}

# ---------------------- Dispatch engine ----------------------

DEFAULT_LOW_BALANCE_THRESHOLD = Decimal(os.getenv("DEFAULT_LOW_BALANCE_THRESHOLD", "100.00"))
ACCEPT_OFFER_MAX_ATTEMPTS = int(os.getenv("ACCEPT_OFFER_MAX_ATTEMPTS", 3))
FEED_CATCH_UP_LIMIT = int(os.getenv("FEED_CATCH_UP_LIMIT", 500))
LEDGER_RECONCILE_BATCH_SIZE = int(os.getenv("LEDGER_RECONCILE_BATCH_SIZE", 100))
NOTIFICATION_MAX_DELIVERY_ATTEMPTS = int(os.getenv("NOTIFICATION_MAX_DELIVERY_ATTEMPTS", 5))
CANCELLATION_DEFAULT_REASON = "No reason provided"

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "simple": {
            "format": "%(asctime)s %(levelname)s %(name)s: %(message)s",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "simple",
        },
    },
    "loggers": {
        "rides": {"handlers": ["console"], "level": "INFO"},
        "services": {"handlers": ["console"], "level": "INFO"},
        "realtime": {"handlers": ["console"], "level": "INFO"},
    },
}
