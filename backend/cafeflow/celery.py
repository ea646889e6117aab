import os

from celery import Celery

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "cafeflow.settings")

app = Celery("cafeflow")

# All celery settings live in Django settings under the CELERY_ namespace.
app.config_from_object("django.conf:settings", namespace="CELERY")
app.autodiscover_tasks()
