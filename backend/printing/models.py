from django.db import models
from django.utils import timezone
from django.utils.translation import gettext_lazy as _


class PrintJob(models.Model):
    """
    Kitchen order ticket (KOT) print job, one per order.

    Queued jobs form a FIFO ordered by ``queued_at``. Re-queuing an order
    resets this row instead of adding another one; ``generation`` is bumped
    on every reset so retries scheduled for an older dispatch can tell they
    have been superseded.
    """

    class JobStatus(models.TextChoices):
        QUEUED = "queued", _("Queued")
        PRINTING = "printing", _("Printing")
        OFFLINE = "offline", _("Printer Offline")
        FAILED = "failed", _("Failed")
        SUCCESS = "success", _("Printed")

    RETRYABLE_STATUSES = (JobStatus.FAILED, JobStatus.OFFLINE)

    order = models.OneToOneField(
        "orders.Order", on_delete=models.CASCADE, related_name="print_job"
    )
    status = models.CharField(
        max_length=20, choices=JobStatus.choices, default=JobStatus.QUEUED
    )
    message = models.CharField(max_length=255, blank=True)
    attempt = models.PositiveIntegerField(
        default=0, help_text=_("Zero-based index of the current print attempt")
    )
    generation = models.PositiveIntegerField(
        default=1, help_text=_("Bumped whenever the job is re-queued")
    )
    queued_at = models.DateTimeField(default=timezone.now)
    last_attempt_at = models.DateTimeField(null=True, blank=True)
    last_success_at = models.DateTimeField(null=True, blank=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["queued_at", "id"]
        indexes = [
            models.Index(fields=["status", "queued_at"], name="printjob_status_queued_idx"),
        ]

    def __str__(self):
        return f"KOT for order {self.order_id}: {self.status} (attempt {self.attempt})"


class PrinterState(models.Model):
    """
    Singleton row describing the kitchen printer.

    ``is_processing`` is the single-consumer claim: a worker may only print
    while it holds it, which keeps at most one job in PRINTING.
    """

    SINGLETON_ID = 1

    class PrinterStatus(models.TextChoices):
        ONLINE = "online", _("Online")
        DEGRADED = "degraded", _("Degraded")
        OFFLINE = "offline", _("Offline")

    id = models.PositiveSmallIntegerField(primary_key=True, default=SINGLETON_ID)
    status = models.CharField(
        max_length=20, choices=PrinterStatus.choices, default=PrinterStatus.ONLINE
    )
    last_success_at = models.DateTimeField(null=True, blank=True)
    last_error = models.CharField(max_length=255, blank=True)
    is_processing = models.BooleanField(default=False)
    claimed_at = models.DateTimeField(null=True, blank=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = _("Printer State")
        verbose_name_plural = _("Printer State")

    def __str__(self):
        return f"Kitchen printer: {self.status}"

    @classmethod
    def load(cls):
        state, _ = cls.objects.get_or_create(pk=cls.SINGLETON_ID)
        return state
