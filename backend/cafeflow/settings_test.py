"""
Settings used by the pytest suite.

Celery runs eagerly, the channel layer is in-memory and the simulated
printer never sleeps or fails unless a test injects a fault policy.
"""
from .settings import *  # noqa: F401,F403

DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": ":memory:",
    }
}

if os.environ.get("POSTGRES_DB"):  # noqa: F405
    DATABASES["default"] = {
        "ENGINE": "django.db.backends.postgresql",
        "NAME": os.environ["POSTGRES_DB"],  # noqa: F405
        "USER": os.environ.get("POSTGRES_USER", "postgres"),  # noqa: F405
        "PASSWORD": os.environ.get("POSTGRES_PASSWORD", ""),  # noqa: F405
        "HOST": os.environ.get("POSTGRES_HOST", "localhost"),  # noqa: F405
        "PORT": os.environ.get("POSTGRES_PORT", "5432"),  # noqa: F405
    }

CHANNEL_LAYERS = {
    "default": {
        "BACKEND": "channels.layers.InMemoryChannelLayer",
    }
}

CELERY_TASK_ALWAYS_EAGER = True
CELERY_TASK_EAGER_PROPAGATES = True
CELERY_BROKER_URL = "memory://"

PRINTER_FAULT_POLICY = "printing.fault_policy.NeverFailPolicy"
PRINTER_BASE_DELAY_SECONDS = 0
PRINTER_ATTEMPT_DELAY_SECONDS = 0
PRINTER_BACKOFF_UNIT_SECONDS = 0
PRINTER_OFFLINE_COOLDOWN_SECONDS = 0

PASSWORD_HASHERS = ["django.contrib.auth.hashers.MD5PasswordHasher"]

LOGGING["root"]["level"] = "ERROR"  # noqa: F405
