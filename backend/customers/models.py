import uuid
from decimal import Decimal

from django.db import models
from django.utils import timezone
from django.utils.translation import gettext_lazy as _


class Customer(models.Model):
    """
    A café guest identified by phone number.

    Customers are created on the fly when an order carries a phone number and
    always come with a loyalty account.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    phone = models.CharField(max_length=20, unique=True, db_index=True)
    name = models.CharField(max_length=150, blank=True)
    email = models.EmailField(blank=True)

    created_at = models.DateTimeField(default=timezone.now, editable=False)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        verbose_name = _("Customer")
        verbose_name_plural = _("Customers")

    def __str__(self):
        return f"{self.name or 'Guest'} ({self.phone})"


class LoyaltyAccount(models.Model):
    """
    Points balance for a customer.

    ``points`` must always equal the sum of the account's transaction deltas,
    so it is only ever changed by LoyaltyService together with a
    LoyaltyTransaction row.
    """

    customer = models.OneToOneField(
        Customer, on_delete=models.CASCADE, related_name="loyalty_account"
    )
    points = models.IntegerField(default=0, help_text=_("Current points balance"))
    earned_points = models.PositiveIntegerField(
        default=0, help_text=_("Lifetime points earned from orders and top-ups")
    )
    redeemed_points = models.PositiveIntegerField(
        default=0, help_text=_("Lifetime points spent")
    )

    created_at = models.DateTimeField(default=timezone.now, editable=False)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = _("Loyalty Account")
        verbose_name_plural = _("Loyalty Accounts")

    def __str__(self):
        return f"{self.customer.phone}: {self.points} pts"


class LoyaltyTransaction(models.Model):
    class TransactionType(models.TextChoices):
        EARNED = "earned", _("Earned")
        REDEEMED = "redeemed", _("Redeemed")
        TOPUP = "topup", _("Top-up")

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    account = models.ForeignKey(
        LoyaltyAccount, on_delete=models.CASCADE, related_name="transactions"
    )
    transaction_type = models.CharField(max_length=20, choices=TransactionType.choices)
    points = models.IntegerField(
        help_text=_("Signed change applied to the balance (negative for redemptions)")
    )
    order = models.ForeignKey(
        "orders.Order",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="loyalty_transactions",
    )
    description = models.CharField(max_length=255, blank=True)
    created_at = models.DateTimeField(default=timezone.now, editable=False)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["account", "created_at"], name="loyalty_txn_account_idx"),
        ]

    def __str__(self):
        return f"{self.transaction_type} {self.points:+d} ({self.account.customer.phone})"


class Wallet(models.Model):
    customer = models.OneToOneField(
        Customer, on_delete=models.CASCADE, related_name="wallet"
    )
    balance = models.DecimalField(
        max_digits=10, decimal_places=2, default=Decimal("0.00")
    )

    created_at = models.DateTimeField(default=timezone.now, editable=False)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"Wallet {self.customer.phone}: {self.balance}"


class WalletTransaction(models.Model):
    """
    Every wallet movement, with the balance before and after it was applied.
    """

    class TransactionType(models.TextChoices):
        TOPUP = "topup", _("Top-up")
        PAYMENT = "payment", _("Payment")
        REFUND = "refund", _("Refund")

    class TransactionStatus(models.TextChoices):
        PENDING = "pending", _("Pending")
        APPROVED = "approved", _("Approved")

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    wallet = models.ForeignKey(
        Wallet, on_delete=models.CASCADE, related_name="transactions"
    )
    transaction_type = models.CharField(max_length=20, choices=TransactionType.choices)
    status = models.CharField(
        max_length=20,
        choices=TransactionStatus.choices,
        default=TransactionStatus.PENDING,
    )
    amount = models.DecimalField(max_digits=10, decimal_places=2)
    balance_before = models.DecimalField(max_digits=10, decimal_places=2)
    balance_after = models.DecimalField(max_digits=10, decimal_places=2)
    order = models.ForeignKey(
        "orders.Order",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="wallet_transactions",
    )
    points_used = models.PositiveIntegerField(
        default=0, help_text=_("Loyalty points converted by a top-up from points")
    )
    description = models.CharField(max_length=255, blank=True)
    approved_at = models.DateTimeField(null=True, blank=True)
    approved_by = models.CharField(max_length=150, blank=True)
    created_at = models.DateTimeField(default=timezone.now, editable=False)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["wallet", "created_at"], name="wallet_txn_wallet_idx"),
            models.Index(fields=["status"], name="wallet_txn_status_idx"),
        ]

    def __str__(self):
        return f"{self.transaction_type} {self.amount} ({self.status})"


class TopupOffer(models.Model):
    """A cash amount the counter sells for a fixed number of loyalty points."""

    amount = models.DecimalField(max_digits=10, decimal_places=2)
    points = models.PositiveIntegerField()
    bonus_points = models.PositiveIntegerField(default=0)
    description = models.CharField(max_length=255, blank=True)
    is_active = models.BooleanField(default=True)
    display_order = models.PositiveIntegerField(default=0)

    class Meta:
        ordering = ["display_order", "amount"]

    def __str__(self):
        return f"{self.amount} -> {self.total_points} pts"

    @property
    def total_points(self):
        return self.points + self.bonus_points
