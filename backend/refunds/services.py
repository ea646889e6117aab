import logging

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import transaction
from django.utils import timezone
from rest_framework.exceptions import ValidationError

from cafeflow.exceptions import AlreadyProcessed, NotFound, OrderNotPaid
from cafeflow.money import quantize
from customers.services import WalletService
from orders.models import Order
from .models import Refund

logger = logging.getLogger(__name__)


class RefundService:
    """
    Refund requests and their manager decisions.

    Built with the event bus so approving a refund can announce the order's
    new payment status to the cashier screens.
    """

    def __init__(self, events=None):
        self.events = events

    @staticmethod
    def _lock(refund_id) -> Refund:
        try:
            return Refund.objects.select_for_update().select_related("order").get(pk=refund_id)
        except (Refund.DoesNotExist, DjangoValidationError, ValueError):
            raise NotFound(f"Refund {refund_id} not found")

    @staticmethod
    def get_refund(refund_id) -> Refund:
        try:
            return Refund.objects.select_related("order").get(pk=refund_id)
        except (Refund.DoesNotExist, DjangoValidationError, ValueError):
            raise NotFound(f"Refund {refund_id} not found")

    @staticmethod
    def list_refunds(status=None, order_id=None, limit=None):
        queryset = Refund.objects.select_related("order", "customer").order_by("-created_at")
        if status:
            queryset = queryset.filter(status=status)
        if order_id:
            queryset = queryset.filter(order_id=order_id)
        if limit:
            queryset = queryset[:limit]
        return list(queryset)

    @staticmethod
    @transaction.atomic
    def request_refund(order_id, amount=None, reason="", requested_by=None) -> Refund:
        try:
            order = Order.objects.select_for_update().get(pk=order_id)
        except (Order.DoesNotExist, DjangoValidationError, ValueError):
            raise NotFound(f"Order {order_id} not found")

        if order.payment_status != Order.PaymentStatus.PAID:
            raise OrderNotPaid(
                f"Cannot refund order {order.order_number}: payment status is {order.payment_status}"
            )

        refund_amount = quantize(amount) if amount is not None else order.total
        if refund_amount <= 0:
            raise ValidationError({"amount": "Refund amount must be positive"})

        refund = Refund.objects.create(
            order=order,
            customer=order.customer,
            amount=refund_amount,
            reason=reason or "",
            requested_by=requested_by or "",
        )
        logger.info(f"Refund {refund.id} of {refund_amount} requested for order {order.order_number}")
        return refund

    def approve_refund(self, refund_id, approved_by) -> Refund:
        with transaction.atomic():
            refund = self._lock(refund_id)
            if refund.status != Refund.RefundStatus.PENDING:
                raise AlreadyProcessed(f"Refund is already {refund.status}")

            order = Order.objects.select_for_update().get(pk=refund.order_id)
            if order.payment_status != Order.PaymentStatus.PAID:
                raise OrderNotPaid(
                    f"Cannot refund order {order.order_number}: payment status is {order.payment_status}"
                )

            refund.status = Refund.RefundStatus.APPROVED
            refund.approved_by = approved_by or ""
            refund.approved_at = timezone.now()
            refund.save(update_fields=["status", "approved_by", "approved_at", "updated_at"])

            order.payment_status = Order.PaymentStatus.REFUNDED
            order.save(update_fields=["payment_status", "updated_at"])

            if order.payment_method == "Wallet":
                if order.customer is None:
                    raise NotFound(f"Order {order.order_number} has no customer wallet to refund")
                WalletService.credit_refund(order.customer, refund.amount, order)

            refund.refunded_at = timezone.now()
            refund.save(update_fields=["refunded_at", "updated_at"])

            order.add_timeline("Refund Approved", approved_by, f"Refunded {refund.amount}")
            logger.info(f"Refund {refund.id} approved by {approved_by} for order {order.order_number}")

            if self.events is not None:
                self.events.order_updated(order)

        return refund

    @staticmethod
    @transaction.atomic
    def reject_refund(refund_id, rejected_by, rejection_reason) -> Refund:
        if not (rejection_reason or "").strip():
            raise ValidationError({"rejection_reason": "Rejection reason is required"})

        refund = RefundService._lock(refund_id)
        if refund.status != Refund.RefundStatus.PENDING:
            raise AlreadyProcessed(f"Refund is already {refund.status}")

        refund.status = Refund.RefundStatus.REJECTED
        refund.rejected_by = rejected_by or ""
        refund.rejection_reason = rejection_reason.strip()
        refund.rejected_at = timezone.now()
        refund.save(
            update_fields=["status", "rejected_by", "rejection_reason", "rejected_at", "updated_at"]
        )
        logger.info(f"Refund {refund.id} rejected by {rejected_by}")
        return refund
