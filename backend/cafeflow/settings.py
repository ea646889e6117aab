"""
Django settings for the CafeFlow backend.

Everything environment specific is read from environment variables so the
same module serves local development, the celery worker and production.
"""
import os
from datetime import timedelta
from pathlib import Path

from celery.schedules import crontab

BASE_DIR = Path(__file__).resolve().parent.parent


def env_bool(name, default=False):
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def env_float(name, default):
    value = os.environ.get(name)
    return float(value) if value not in (None, "") else default


SECRET_KEY = os.environ.get("DJANGO_SECRET_KEY", "django-insecure-cafeflow-dev-key")
DEBUG = env_bool("DJANGO_DEBUG", True)
ALLOWED_HOSTS = [
    host.strip()
    for host in os.environ.get("DJANGO_ALLOWED_HOSTS", "localhost,127.0.0.1").split(",")
    if host.strip()
]

INSTALLED_APPS = [
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    "rest_framework",
    "channels",
    # Local apps
    "tables",
    "customers",
    "orders",
    "payments",
    "refunds",
    "printing",
    "notifications",
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

ROOT_URLCONF = "cafeflow.urls"

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

ASGI_APPLICATION = "cafeflow.asgi.application"

# --- Database ---
# Postgres when configured, SQLite for local development and the test suite.
if os.environ.get("POSTGRES_DB"):
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.postgresql",
            "NAME": os.environ["POSTGRES_DB"],
            "USER": os.environ.get("POSTGRES_USER", "postgres"),
            "PASSWORD": os.environ.get("POSTGRES_PASSWORD", ""),
            "HOST": os.environ.get("POSTGRES_HOST", "localhost"),
            "PORT": os.environ.get("POSTGRES_PORT", "5432"),
            "ATOMIC_REQUESTS": False,
        }
    }
else:
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.sqlite3",
            "NAME": BASE_DIR / "db.sqlite3",
        }
    }

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

LANGUAGE_CODE = "en-us"
TIME_ZONE = os.environ.get("DJANGO_TIME_ZONE", "Asia/Kolkata")
USE_I18N = True
USE_TZ = True

STATIC_URL = "static/"

# --- Django REST Framework ---
REST_FRAMEWORK = {
    "COERCE_DECIMAL_TO_STRING": True,
}

# --- Channels ---
REDIS_URL = os.environ.get("REDIS_URL", "")

if REDIS_URL:
    CHANNEL_LAYERS = {
        "default": {
            "BACKEND": "channels_redis.core.RedisChannelLayer",
            "CONFIG": {
                "hosts": [REDIS_URL],
                # Slow viewers lose messages instead of blocking publishers.
                "capacity": 200,
                "expiry": 30,
            },
        }
    }
else:
    CHANNEL_LAYERS = {
        "default": {
            "BACKEND": "channels.layers.InMemoryChannelLayer",
        }
    }

# --- Celery ---
CELERY_BROKER_URL = os.environ.get("CELERY_BROKER_URL", REDIS_URL or "redis://localhost:6379/0")
CELERY_RESULT_BACKEND = os.environ.get("CELERY_RESULT_BACKEND", None)
CELERY_ACCEPT_CONTENT = ["json"]
CELERY_TASK_SERIALIZER = "json"
CELERY_RESULT_SERIALIZER = "json"
CELERY_TIMEZONE = TIME_ZONE
CELERY_TASK_ALWAYS_EAGER = env_bool("CELERY_TASK_ALWAYS_EAGER", False)
CELERY_TASK_EAGER_PROPAGATES = True

# The kitchen printer is a single physical device: route its tasks to a
# dedicated queue served by one worker with --concurrency=1.
CELERY_TASK_ROUTES = {
    "printing.tasks.*": {"queue": "printer"},
}

CELERY_BEAT_SCHEDULE = {
    "drain-print-queue": {
        "task": "printing.tasks.process_print_queue",
        "schedule": timedelta(seconds=30),
    },
    "log-printer-health": {
        "task": "printing.tasks.log_printer_health",
        "schedule": crontab(minute="*/15"),
    },
}

# --- Kitchen printer ---
PRINTER_FAULT_POLICY = os.environ.get(
    "PRINTER_FAULT_POLICY", "printing.fault_policy.RandomFaultPolicy"
)
PRINTER_OFFLINE_PROBABILITY = env_float("PRINTER_OFFLINE_PROBABILITY", 0.1)
PRINTER_FAILURE_PROBABILITY = env_float("PRINTER_FAILURE_PROBABILITY", 0.15)
PRINTER_BASE_DELAY_SECONDS = env_float("PRINTER_BASE_DELAY_SECONDS", 1.0)
PRINTER_ATTEMPT_DELAY_SECONDS = env_float("PRINTER_ATTEMPT_DELAY_SECONDS", 0.5)
PRINTER_BACKOFF_UNIT_SECONDS = env_float("PRINTER_BACKOFF_UNIT_SECONDS", 1.0)
PRINTER_OFFLINE_COOLDOWN_SECONDS = env_float("PRINTER_OFFLINE_COOLDOWN_SECONDS", 5.0)
PRINTER_MAX_RETRIES = int(os.environ.get("PRINTER_MAX_RETRIES", 3))
PRINTER_JOB_TIME_LIMIT_SECONDS = int(os.environ.get("PRINTER_JOB_TIME_LIMIT_SECONDS", 30))

# --- Loyalty & wallet ---
# 1 point = 0.1 currency unit when converting points into wallet credit.
WALLET_POINTS_RATE = os.environ.get("WALLET_POINTS_RATE", "0.1")

# --- Logging ---
LOG_LEVEL = os.environ.get("DJANGO_LOG_LEVEL", "INFO")

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
        "level": "WARNING",
    },
    "loggers": {
        "django": {"handlers": ["console"], "level": "INFO", "propagate": False},
        "orders": {"handlers": ["console"], "level": LOG_LEVEL, "propagate": False},
        "tables": {"handlers": ["console"], "level": LOG_LEVEL, "propagate": False},
        "customers": {"handlers": ["console"], "level": LOG_LEVEL, "propagate": False},
        "payments": {"handlers": ["console"], "level": LOG_LEVEL, "propagate": False},
        "refunds": {"handlers": ["console"], "level": LOG_LEVEL, "propagate": False},
        "printing": {"handlers": ["console"], "level": LOG_LEVEL, "propagate": False},
        "notifications": {"handlers": ["console"], "level": LOG_LEVEL, "propagate": False},
    },
}
