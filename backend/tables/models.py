import uuid
from django.db import models
from django.utils import timezone
from django.utils.translation import gettext_lazy as _


class Table(models.Model):
    """
    A dine-in table customers order from by scanning its QR code.

    ``status`` is the authoritative occupancy signal for every display: a
    table is OCCUPIED while it has at least one PENDING or APPROVED order and
    goes back to IDLE when that order is rejected or the cashier releases it.
    """

    class TableStatus(models.TextChoices):
        IDLE = "idle", _("Idle")
        OCCUPIED = "occupied", _("Occupied")

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    table_number = models.CharField(
        max_length=50,
        unique=True,
        help_text=_("Number printed on the table, e.g. T-01"),
    )
    qr_slug = models.SlugField(
        max_length=255,
        unique=True,
        help_text=_("Slug encoded in the table's QR code"),
    )
    status = models.CharField(
        max_length=20, choices=TableStatus.choices, default=TableStatus.IDLE
    )

    created_at = models.DateTimeField(default=timezone.now, editable=False)
    updated_at = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ["table_number"]
        verbose_name = _("Table")
        verbose_name_plural = _("Tables")

    def __str__(self):
        return f"Table {self.table_number} ({self.status})"

    def save(self, *args, **kwargs):
        if not self.qr_slug:
            self.qr_slug = self.table_number
        super().save(*args, **kwargs)

    @property
    def is_occupied(self):
        return self.status == self.TableStatus.OCCUPIED
