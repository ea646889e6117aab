import uuid

from django.db import models
from django.utils import timezone
from django.utils.translation import gettext_lazy as _


class Payment(models.Model):
    """
    Ledger entry written every time an order's payment is confirmed.

    Capture itself happens outside the system (cash drawer, card machine,
    UPI app); this row records who confirmed what and how.
    """

    class PaymentType(models.TextChoices):
        CASH = "cash", _("Cash")
        CARD = "card", _("Card")
        UPI = "upi", _("UPI")
        WALLET = "wallet", _("Wallet")
        LOYALTY = "loyalty", _("Loyalty Points")

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    order = models.ForeignKey(
        "orders.Order", on_delete=models.PROTECT, related_name="payments"
    )
    customer = models.ForeignKey(
        "customers.Customer",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="payments",
    )
    amount = models.DecimalField(max_digits=10, decimal_places=2)
    payment_method = models.CharField(
        max_length=50, help_text=_("Method label as entered, e.g. 'UPI - GPay'")
    )
    payment_type = models.CharField(max_length=20, choices=PaymentType.choices)
    is_manual_flag = models.BooleanField(
        default=False, help_text=_("Confirmed manually without a capture reference")
    )
    card_machine_used = models.BooleanField(default=False)
    confirmed_by = models.CharField(max_length=150, blank=True)
    notes = models.TextField(blank=True)
    created_at = models.DateTimeField(default=timezone.now, editable=False)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["order", "created_at"], name="payment_order_created_idx"),
            models.Index(fields=["payment_type"], name="payment_type_idx"),
        ]

    def __str__(self):
        return f"{self.payment_type} {self.amount} for {self.order.order_number}"
