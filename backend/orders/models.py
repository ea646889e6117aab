import random
import time
import uuid
from decimal import Decimal

from django.db import IntegrityError, models, transaction
from django.utils import timezone
from django.utils.translation import gettext_lazy as _


def generate_order_number() -> str:
    """ORD-<last 6 digits of the millisecond clock>-<3 random digits>."""
    millis = str(int(time.time() * 1000))[-6:]
    return f"ORD-{millis}-{random.randint(0, 999):03d}"


class Order(models.Model):
    """
    A table order moving through pending -> approved -> served (or rejected).

    Status and payment status are only written by OrderService, TableService
    and RefundService; nothing else should save them directly.
    """

    class OrderStatus(models.TextChoices):
        PENDING = "pending", _("Pending")
        APPROVED = "approved", _("Approved")
        REJECTED = "rejected", _("Rejected")
        SERVED = "served", _("Served")

    class PaymentStatus(models.TextChoices):
        UNPAID = "unpaid", _("Unpaid")
        PAID = "paid", _("Paid")
        REFUNDED = "refunded", _("Refunded")

    ACTIVE_STATUSES = (OrderStatus.PENDING, OrderStatus.APPROVED)

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    order_number = models.CharField(max_length=20, unique=True, editable=False)

    table = models.ForeignKey(
        "tables.Table", on_delete=models.PROTECT, related_name="orders"
    )
    table_number = models.CharField(
        max_length=50, help_text=_("Table number at the time the order was placed")
    )

    status = models.CharField(
        max_length=20, choices=OrderStatus.choices, default=OrderStatus.PENDING
    )
    payment_status = models.CharField(
        max_length=20, choices=PaymentStatus.choices, default=PaymentStatus.UNPAID
    )
    payment_method = models.CharField(
        max_length=50, blank=True, help_text=_("Label shown to staff, e.g. Cash, UPI, Wallet")
    )
    is_cashier_order = models.BooleanField(
        default=False,
        help_text=_("Placed at the counter; must be paid before approval"),
    )

    customer = models.ForeignKey(
        "customers.Customer",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="orders",
    )
    customer_name = models.CharField(max_length=150, blank=True)
    customer_phone = models.CharField(max_length=20, blank=True)
    customer_notes = models.TextField(blank=True)

    total = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal("0.00"))

    payment_confirmed_at = models.DateTimeField(null=True, blank=True)
    payment_confirmed_by = models.CharField(max_length=150, blank=True)
    approved_at = models.DateTimeField(null=True, blank=True)
    served_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(default=timezone.now, editable=False)
    updated_at = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ["-created_at", "order_number"]
        verbose_name = _("Order")
        verbose_name_plural = _("Orders")
        indexes = [
            models.Index(fields=["table", "status"], name="order_table_status_idx"),
            models.Index(fields=["status", "created_at"], name="order_status_created_idx"),
            models.Index(fields=["payment_status"], name="order_payment_status_idx"),
        ]

    def __str__(self):
        return f"Order {self.order_number} (table {self.table_number}) - {self.status}"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            self.updated_at = timezone.now()
            return super().save(*args, **kwargs)

        if self.order_number:
            return super().save(*args, **kwargs)

        # Two orders in the same millisecond can draw the same number.
        max_retries = 5
        for _ in range(max_retries):
            self.order_number = generate_order_number()
            try:
                with transaction.atomic():
                    super().save(*args, **kwargs)
                return
            except IntegrityError:
                if not Order.objects.filter(order_number=self.order_number).exists():
                    raise
        raise IntegrityError("Failed to generate a unique order number after multiple retries.")

    @property
    def is_paid(self):
        return self.payment_status == self.PaymentStatus.PAID

    @property
    def is_active(self):
        return self.status in self.ACTIVE_STATUSES

    def add_timeline(self, action: str, actor: str, note: str = ""):
        return OrderTimelineEntry.objects.create(
            order=self, action=action, actor=actor or "", note=note or ""
        )


class OrderItem(models.Model):
    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name="items")
    position = models.PositiveIntegerField(default=0)
    name = models.CharField(max_length=255)
    quantity = models.PositiveIntegerField(default=1)
    unit_price = models.DecimalField(max_digits=10, decimal_places=2)
    modifiers = models.JSONField(
        default=list, blank=True, help_text=_("Modifier labels, e.g. ['extra shot']")
    )

    class Meta:
        ordering = ["position", "id"]

    def __str__(self):
        return f"{self.quantity} x {self.name}"

    @property
    def line_total(self):
        return self.unit_price * self.quantity


class OrderTimelineEntry(models.Model):
    """Append-only audit trail of everything that happened to an order."""

    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name="timeline")
    action = models.CharField(max_length=100)
    actor = models.CharField(max_length=150, blank=True)
    note = models.TextField(blank=True)
    timestamp = models.DateTimeField(default=timezone.now, editable=False)

    class Meta:
        ordering = ["timestamp", "id"]
        verbose_name_plural = _("Order timeline entries")

    def __str__(self):
        return f"{self.order.order_number}: {self.action} by {self.actor}"
