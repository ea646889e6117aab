import logging

from celery import shared_task
from django.apps import apps
from django.conf import settings

logger = logging.getLogger(__name__)


def get_printer():
    """The PrinterService built by PrintingConfig.ready() for this process."""
    return apps.get_app_config("printing").printer


@shared_task(
    bind=True,
    soft_time_limit=settings.PRINTER_JOB_TIME_LIMIT_SECONDS,
    time_limit=settings.PRINTER_JOB_TIME_LIMIT_SECONDS + 10,
)
def process_print_queue(self):
    """
    Prints the oldest queued KOT.

    Each run handles one job and re-dispatches itself while the queue is not
    empty. Runs that find another worker holding the printer exit at once.
    Beat also runs this periodically so a lost dispatch cannot strand a job.
    """
    job = get_printer().process_next()
    if job is None:
        return {"status": "idle"}
    return {
        "status": job.status,
        "order_id": str(job.order_id),
        "attempt": job.attempt,
    }


@shared_task
def retry_print_job(order_id, attempt, generation):
    """Automatic retry scheduled with exponential backoff after a failed print."""
    resumed = get_printer().resume_after_failure(order_id, attempt, generation)
    return {"order_id": order_id, "attempt": attempt, "resumed": resumed}


@shared_task
def restore_printer(order_id, generation):
    """Brings the printer back online after the offline cooldown."""
    requeued = get_printer().restore(order_id, generation)
    return {"order_id": order_id, "requeued": requeued}


@shared_task
def log_printer_health():
    health = get_printer().health()
    if health["status"] != "online" or health["queue_length"]:
        logger.warning(
            f"Printer health: status={health['status']}, queue={health['queue_length']}, "
            f"last_error={health['last_error']}"
        )
    else:
        logger.info(f"Printer health: online, last success {health['last_success']}")
    return health
