"""
Django settings for the Registration Platform.

Every deploy-specific value is read from the environment, with defaults
suitable for local development.
"""

import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent


def _env_bool(name: str, default: bool = False) -> bool:
    return os.environ.get(name, str(default)).lower() in ("1", "true", "yes")


def _env_int(name: str, default: int) -> int:
    return int(os.environ.get(name, default))


SECRET_KEY = os.environ.get("SECRET_KEY", "dev-insecure-secret-key-change-me")
DEBUG = _env_bool("DEBUG", False)
ALLOWED_HOSTS = [h for h in os.environ.get("ALLOWED_HOSTS", "localhost").split(",") if h]

INSTALLED_APPS = [
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    "lottery",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
]

ROOT_URLCONF = "registration_platform.urls"

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

DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.postgresql",
        "NAME": os.environ.get("POSTGRES_DB", "registration"),
        "USER": os.environ.get("POSTGRES_USER", "postgres"),
        "PASSWORD": os.environ.get("POSTGRES_PASSWORD", ""),
        "HOST": os.environ.get("POSTGRES_HOST", "localhost"),
        "PORT": os.environ.get("POSTGRES_PORT", "5432"),
    }
}

AUTH_USER_MODEL = "lottery.User"
DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

LANGUAGE_CODE = "en-us"
TIME_ZONE = "UTC"
USE_TZ = True

STATIC_URL = "static/"

# Celery
CELERY_BROKER_URL = os.environ.get("CELERY_BROKER_URL", "redis://localhost:6379/0")
CELERY_RESULT_BACKEND = os.environ.get("CELERY_RESULT_BACKEND", CELERY_BROKER_URL)
CELERY_TASK_SERIALIZER = "json"
CELERY_ACCEPT_CONTENT = ["json"]
CELERY_TIMEZONE = TIME_ZONE

# Lottery jobs
LOTTERY_JOB_INTERVAL_SECONDS = _env_int("LOTTERY_JOB_INTERVAL_SECONDS", 60)
INVITATION_DEFAULT_TTL_DAYS = _env_int("INVITATION_DEFAULT_TTL_DAYS", 7)

# The sorry window must be exactly one job interval wide so each event
# start time is seen by one tick only.
SORRY_WINDOW_START_SECONDS = _env_int("SORRY_WINDOW_START_SECONDS", 60)
SORRY_WINDOW_END_SECONDS = _env_int(
    "SORRY_WINDOW_END_SECONDS", SORRY_WINDOW_START_SECONDS + LOTTERY_JOB_INTERVAL_SECONDS
)

# Push notifications
FIREBASE_CREDENTIALS_PATH = os.environ.get("FIREBASE_CREDENTIALS_PATH")
FCM_BATCH_SIZE = _env_int("FCM_BATCH_SIZE", 500)
NOTIFICATION_MAX_RETRIES = _env_int("NOTIFICATION_MAX_RETRIES", 3)
NOTIFICATION_RETRY_MIN_DELAY_SECONDS = _env_int("NOTIFICATION_RETRY_MIN_DELAY_SECONDS", 60)
NOTIFICATION_CLAIM_LEASE_SECONDS = _env_int("NOTIFICATION_CLAIM_LEASE_SECONDS", 300)

CELERY_BEAT_SCHEDULE = {
    "process-automatic-entrant-selection": {
        "task": "lottery.tasks.process_automatic_entrant_selection",
        "schedule": LOTTERY_JOB_INTERVAL_SECONDS,
    },
    "send-sorry-notifications": {
        "task": "lottery.tasks.send_sorry_notifications",
        "schedule": LOTTERY_JOB_INTERVAL_SECONDS,
    },
    "retry-failed-notifications": {
        "task": "lottery.tasks.retry_failed_notifications",
        "schedule": LOTTERY_JOB_INTERVAL_SECONDS,
    },
    "redispatch-stale-notifications": {
        "task": "lottery.tasks.redispatch_stale_notifications",
        "schedule": LOTTERY_JOB_INTERVAL_SECONDS,
    },
}

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "verbose": {
            "format": "{asctime} {levelname} {name} {message}",
            "style": "{",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "verbose",
        },
    },
    "root": {
        "handlers": ["console"],
        "level": os.environ.get("LOG_LEVEL", "INFO"),
    },
    "loggers": {
        "lottery": {
            "handlers": ["console"],
            "level": os.environ.get("LOG_LEVEL", "INFO"),
            "propagate": False,
        },
    },
}
