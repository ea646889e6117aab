import logging
import time
from datetime import timedelta

from celery.exceptions import SoftTimeLimitExceeded
from django.db import transaction
from django.db.models import F, Q
from django.utils import timezone
from django.utils.module_loading import import_string

from cafeflow.exceptions import NotFound
from orders.models import Order
from .models import PrintJob, PrinterState
from .serializers import PrintJobSerializer

logger = logging.getLogger(__name__)


class PrinterService:
    """
    Kitchen printer pipeline.

    Approved orders are queued as PrintJob rows and drained one at a time by
    the ``process_print_queue`` celery task. Holding the PrinterState claim is
    what makes a worker the single consumer, so several workers can share the
    printer queue safely.

    A job at attempt ``n``:
      * may find the printer offline (first attempt only): the job waits as
        OFFLINE and ``restore_printer`` re-queues it after the cooldown;
      * otherwise prints for ``base_delay + n * attempt_delay`` seconds;
      * on failure is retried after ``2**n * backoff_unit`` seconds until
        ``max_retries`` retries have been used, then stays FAILED.

    Every job change is published as ``printer:update`` and ``kot:update``.
    """

    # Claims older than this are assumed to belong to a dead worker.
    STALE_CLAIM_AFTER = timedelta(minutes=2)

    def __init__(
        self,
        fault_policy,
        events=None,
        base_delay=1.0,
        attempt_delay=0.5,
        backoff_unit=1.0,
        offline_cooldown=5.0,
        max_retries=3,
        sleep=time.sleep,
    ):
        self.fault_policy = fault_policy
        self.events = events
        self.base_delay = base_delay
        self.attempt_delay = attempt_delay
        self.backoff_unit = backoff_unit
        self.offline_cooldown = offline_cooldown
        self.max_retries = max_retries
        self.sleep = sleep

    @classmethod
    def from_settings(cls, settings, events=None):
        policy_class = import_string(settings.PRINTER_FAULT_POLICY)
        return cls(
            fault_policy=policy_class.from_settings(settings),
            events=events,
            base_delay=settings.PRINTER_BASE_DELAY_SECONDS,
            attempt_delay=settings.PRINTER_ATTEMPT_DELAY_SECONDS,
            backoff_unit=settings.PRINTER_BACKOFF_UNIT_SECONDS,
            offline_cooldown=settings.PRINTER_OFFLINE_COOLDOWN_SECONDS,
            max_retries=settings.PRINTER_MAX_RETRIES,
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def health(self) -> dict:
        state = PrinterState.load()
        return {
            "status": state.status,
            "queue_length": PrintJob.objects.filter(status=PrintJob.JobStatus.QUEUED).count(),
            "last_success": state.last_success_at.isoformat() if state.last_success_at else None,
            "last_error": state.last_error or None,
        }

    def get_print_status(self, order_id):
        job = PrintJob.objects.filter(order_id=order_id).first()
        return PrintJobSerializer(job).data if job else None

    def list_jobs(self, status=None):
        queryset = PrintJob.objects.all()
        if status:
            queryset = queryset.filter(status=status)
        return list(queryset)

    # ------------------------------------------------------------------
    # Producer side
    # ------------------------------------------------------------------

    def enqueue(self, order_id) -> PrintJob:
        """Queues (or re-queues) the KOT for an order and wakes the worker."""
        with transaction.atomic():
            if not Order.objects.filter(pk=order_id).exists():
                raise NotFound(f"Order {order_id} not found")

            job, created = PrintJob.objects.select_for_update().get_or_create(
                order_id=order_id,
                defaults={
                    "status": PrintJob.JobStatus.QUEUED,
                    "message": "Waiting to print",
                    "queued_at": timezone.now(),
                },
            )
            if not created:
                job = self._requeue(job, attempt=0)
            else:
                self._publish(job)
                transaction.on_commit(self.dispatch)

        logger.info(f"Queued KOT for order {order_id}")
        return job

    def retry(self, order_id) -> bool:
        """
        Operator retry. Only FAILED or OFFLINE jobs can be retried; they go
        back to the queue starting from the first attempt.
        """
        with transaction.atomic():
            job = PrintJob.objects.select_for_update().filter(order_id=order_id).first()
            if job is None or job.status not in PrintJob.RETRYABLE_STATUSES:
                return False
            self._requeue(job, attempt=0)

        logger.info(f"Manual retry queued for order {order_id}")
        return True

    def resume_after_failure(self, order_id, attempt, generation) -> bool:
        """Scheduled automatic retry; ignored if the job was re-queued since."""
        with transaction.atomic():
            job = (
                PrintJob.objects.select_for_update()
                .filter(order_id=order_id, generation=generation, status=PrintJob.JobStatus.FAILED)
                .first()
            )
            if job is None:
                logger.info(f"Ignoring stale retry for order {order_id} (generation {generation})")
                return False
            self._requeue(job, attempt=attempt, new_generation=False)
        return True

    def restore(self, order_id, generation) -> bool:
        """End of the offline cooldown: printer back online, job re-queued."""
        with transaction.atomic():
            PrinterState.load()
            PrinterState.objects.filter(
                pk=PrinterState.SINGLETON_ID, status=PrinterState.PrinterStatus.OFFLINE
            ).update(status=PrinterState.PrinterStatus.ONLINE, updated_at=timezone.now())

            job = (
                PrintJob.objects.select_for_update()
                .filter(order_id=order_id, generation=generation, status=PrintJob.JobStatus.OFFLINE)
                .first()
            )
            if job is None:
                logger.info(f"Printer restored; job for order {order_id} no longer waiting")
                return False
            self._requeue(job, attempt=0)

        logger.info(f"Printer restored; re-queued KOT for order {order_id}")
        return True

    def dispatch(self):
        """Asks a worker to drain the queue. Failures are logged; beat drains later."""
        from .tasks import process_print_queue

        try:
            process_print_queue.delay()
        except Exception as e:
            logger.error(f"Failed to dispatch print queue task: {e}", exc_info=True)

    # ------------------------------------------------------------------
    # Consumer side
    # ------------------------------------------------------------------

    def process_next(self):
        """
        Prints the oldest queued job. Returns the job, or None when another
        worker holds the printer or the queue is empty.
        """
        if not self._claim():
            return None

        try:
            job = (
                PrintJob.objects.filter(status=PrintJob.JobStatus.QUEUED)
                .order_by("queued_at", "id")
                .first()
            )
            if job is None:
                return None
            self._print(job)
            return job
        finally:
            self._release()
            if PrintJob.objects.filter(status=PrintJob.JobStatus.QUEUED).exists():
                transaction.on_commit(self.dispatch)

    def _print(self, job):
        attempt = job.attempt

        if attempt == 0 and self.fault_policy.should_go_offline():
            if not self._update_job(job, PrintJob.JobStatus.OFFLINE, "Printer offline, queued"):
                return
            self._update_printer(PrinterState.PrinterStatus.OFFLINE, last_error="Printer offline")
            self._publish(job)
            logger.warning(
                f"Printer offline while printing order {job.order_id}; "
                f"retrying in {self.offline_cooldown}s"
            )
            self._schedule_restore(job)
            return

        if not self._update_job(
            job, PrintJob.JobStatus.PRINTING, "Printing KOT...", last_attempt_at=timezone.now()
        ):
            return
        self._publish(job)

        error = None
        try:
            delay = self.base_delay + attempt * self.attempt_delay
            if delay > 0:
                self.sleep(delay)
            if self.fault_policy.should_fail(attempt):
                error = "Print failed"
        except SoftTimeLimitExceeded:
            error = "Print timed out"

        if error is None:
            now = timezone.now()
            if self._update_job(
                job, PrintJob.JobStatus.SUCCESS, "Printed successfully", last_success_at=now
            ):
                self._update_printer(
                    PrinterState.PrinterStatus.ONLINE, last_error="", last_success_at=now
                )
                self._publish(job)
                logger.info(f"Printed KOT for order {job.order_id} on attempt {attempt + 1}")
            return

        if attempt < self.max_retries:
            message = f"{error}, retrying"
        else:
            message = f"{error}, retry budget exhausted"
        if not self._update_job(job, PrintJob.JobStatus.FAILED, message):
            return
        self._update_printer(PrinterState.PrinterStatus.DEGRADED, last_error=error)
        self._publish(job)

        if attempt < self.max_retries:
            backoff = (2 ** attempt) * self.backoff_unit
            logger.warning(
                f"{error} for order {job.order_id} (attempt {attempt + 1}); retrying in {backoff}s"
            )
            self._schedule_retry(job, attempt + 1, backoff)
        else:
            logger.error(
                f"{error} for order {job.order_id}; giving up after {attempt + 1} attempts"
            )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _claim(self) -> bool:
        PrinterState.load()
        now = timezone.now()
        claimed = PrinterState.objects.filter(
            Q(is_processing=False) | Q(claimed_at__lt=now - self.STALE_CLAIM_AFTER),
            pk=PrinterState.SINGLETON_ID,
        ).update(is_processing=True, claimed_at=now, updated_at=now)
        return bool(claimed)

    def _release(self):
        PrinterState.objects.filter(pk=PrinterState.SINGLETON_ID).update(
            is_processing=False, claimed_at=None, updated_at=timezone.now()
        )

    def _requeue(self, job, attempt, new_generation=True) -> PrintJob:
        changes = {
            "status": PrintJob.JobStatus.QUEUED,
            "message": "Waiting to print",
            "attempt": attempt,
            "queued_at": timezone.now(),
            "updated_at": timezone.now(),
        }
        if new_generation:
            changes["generation"] = F("generation") + 1
        PrintJob.objects.filter(pk=job.pk).update(**changes)
        job.refresh_from_db()
        self._publish(job)
        transaction.on_commit(self.dispatch)
        return job

    def _update_job(self, job, status, message, **extra) -> bool:
        """
        Writes the job's new status unless it was re-queued by someone else
        since this worker picked it up.
        """
        updated = PrintJob.objects.filter(pk=job.pk, generation=job.generation).update(
            status=status, message=message, updated_at=timezone.now(), **extra
        )
        if not updated:
            logger.info(f"Print job for order {job.order_id} was superseded; dropping result")
            return False
        job.status = status
        job.message = message
        for field, value in extra.items():
            setattr(job, field, value)
        return True

    def _update_printer(self, status, **extra):
        PrinterState.load()
        PrinterState.objects.filter(pk=PrinterState.SINGLETON_ID).update(
            status=status, updated_at=timezone.now(), **extra
        )

    def _schedule_retry(self, job, attempt, countdown):
        from .tasks import retry_print_job

        retry_print_job.apply_async(
            args=[str(job.order_id), attempt, job.generation], countdown=countdown
        )

    def _schedule_restore(self, job):
        from .tasks import restore_printer

        restore_printer.apply_async(
            args=[str(job.order_id), job.generation], countdown=self.offline_cooldown
        )

    def _publish(self, job):
        if self.events is None:
            return
        try:
            health = self.health()
            self.events.printer_updated(job.order_id, job.status, health)
            order = Order.objects.prefetch_related("items", "timeline").get(pk=job.order_id)
            self.events.kot_updated(order, PrintJobSerializer(job).data)
        except Exception as e:
            logger.error(f"Failed to publish print status for order {job.order_id}: {e}")
