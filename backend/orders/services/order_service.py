import logging

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import transaction
from django.utils import timezone
from rest_framework.exceptions import ValidationError

from cafeflow.exceptions import AlreadyPaid, InvalidTransition, NotFound, PaymentRequired
from cafeflow.money import points_earned, points_required, quantize
from customers.services import CustomerService, LoyaltyService, WalletService
from orders.models import Order, OrderItem
from orders.serializers import OrderItemSerializer
from payments.services import PaymentService
from tables.services import TableService

logger = logging.getLogger(__name__)

LOYALTY_POINTS_METHOD = "Loyalty Points"
WALLET_METHOD = "Wallet"


class OrderService:
    """
    Order lifecycle state machine.

        pending --approve--> approved --serve--> served
        pending --reject--> rejected

    Payment is confirmed independently of status while the order is pending
    or approved. Every transition locks the order row and writes the new
    status with a compare-and-set update, so concurrent callers serialize and
    the loser gets InvalidTransition (or AlreadyPaid).

    The printer and event bus are collaborators handed in by the caller; a
    service built without them simply skips printing and publishing.
    """

    def __init__(self, printer=None, events=None):
        self.printer = printer
        self.events = events

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    @staticmethod
    def get_order(order_id) -> Order:
        try:
            return Order.objects.prefetch_related("items", "timeline").get(pk=order_id)
        except (Order.DoesNotExist, DjangoValidationError, ValueError):
            raise NotFound(f"Order {order_id} not found")

    @staticmethod
    def list_orders(status=None, table=None, payment_status=None, start=None, end=None, limit=None):
        """
        Orders newest first. ``table`` accepts anything TableService.resolve
        does; ``start``/``end`` bound ``created_at`` inclusively.
        """
        queryset = Order.objects.prefetch_related("items", "timeline").order_by("-created_at")
        if status:
            queryset = queryset.filter(status=status)
        if payment_status:
            queryset = queryset.filter(payment_status=payment_status)
        if table:
            queryset = queryset.filter(table=TableService.resolve(table))
        if start:
            queryset = queryset.filter(created_at__gte=start)
        if end:
            queryset = queryset.filter(created_at__lte=end)
        if limit:
            queryset = queryset[:limit]
        return list(queryset)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _lock(order_id) -> Order:
        try:
            return Order.objects.select_for_update().get(pk=order_id)
        except (Order.DoesNotExist, DjangoValidationError, ValueError):
            raise NotFound(f"Order {order_id} not found")

    @staticmethod
    def _transition(order: Order, expected, **changes):
        """
        Compare-and-set write: applies ``changes`` only if the order is still
        in one of the ``expected`` statuses.
        """
        if isinstance(expected, str):
            expected = [expected]
        changes["updated_at"] = timezone.now()
        updated = Order.objects.filter(pk=order.pk, status__in=expected).update(**changes)
        if not updated:
            current = Order.objects.filter(pk=order.pk).values_list("status", flat=True).first()
            raise InvalidTransition(
                f"Order {order.order_number} is {current}, expected {' or '.join(expected)}",
                details={"order_id": str(order.pk), "status": current},
            )
        for field, value in changes.items():
            setattr(order, field, value)
        return order

    @staticmethod
    def _resolve_payment_status(payment_status, payment_method, is_cashier_order):
        if payment_status:
            allowed = [Order.PaymentStatus.UNPAID, Order.PaymentStatus.PAID]
            if payment_status not in allowed:
                raise ValidationError({"payment_status": f"Must be one of {allowed}"})
            return payment_status
        if is_cashier_order:
            return Order.PaymentStatus.UNPAID
        if payment_method:
            return Order.PaymentStatus.PAID
        return Order.PaymentStatus.UNPAID

    def _publish_updated(self, order):
        if self.events is not None:
            self.events.order_updated(order)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def create_order(
        self,
        table,
        items,
        total=None,
        payment_method=None,
        payment_status=None,
        customer_phone=None,
        customer_name=None,
        customer_notes=None,
        is_cashier_order=False,
        confirmed_by=None,
    ) -> Order:
        """
        Places a new pending order and occupies its table.

        A new order always marks its table occupied, even if the cashier
        reset the table to idle a moment earlier.

        Payment status: an explicit ``payment_status`` wins; otherwise cashier
        orders start unpaid and customer orders that name a payment method are
        treated as paid. Orders created paid record their payment immediately,
        and "Loyalty Points" orders redeem ceil(total) points.
        """
        item_serializer = OrderItemSerializer(data=items, many=True, allow_empty=False)
        item_serializer.is_valid(raise_exception=True)
        line_items = item_serializer.validated_data

        status_for_payment = self._resolve_payment_status(
            payment_status, payment_method, is_cashier_order
        )

        with transaction.atomic():
            table = TableService.resolve(table)

            customer = None
            if customer_phone:
                customer = CustomerService.get_or_create_by_phone(customer_phone, customer_name)

            if total is not None:
                order_total = quantize(total)
            else:
                order_total = quantize(
                    sum(item["unit_price"] * item["quantity"] for item in line_items)
                )

            order = Order.objects.create(
                table=table,
                table_number=table.table_number,
                status=Order.OrderStatus.PENDING,
                payment_status=status_for_payment,
                payment_method=payment_method or "",
                is_cashier_order=bool(is_cashier_order),
                customer=customer,
                customer_name=customer_name or (customer.name if customer else ""),
                customer_phone=customer_phone or "",
                customer_notes=customer_notes or "",
                total=order_total,
            )
            OrderItem.objects.bulk_create(
                [
                    OrderItem(
                        order=order,
                        position=position,
                        name=item["name"],
                        quantity=item["quantity"],
                        unit_price=item["unit_price"],
                        modifiers=item.get("modifiers", []),
                    )
                    for position, item in enumerate(line_items)
                ]
            )

            TableService.occupy(table)
            order.add_timeline(
                "Order Created",
                "Cashier" if is_cashier_order else "Customer",
                f"Table {table.table_number}",
            )

            if status_for_payment == Order.PaymentStatus.PAID and payment_method:
                if payment_method == LOYALTY_POINTS_METHOD:
                    if customer is None:
                        raise NotFound("Loyalty points payments require a customer phone number")
                    LoyaltyService.redeem_points(
                        customer,
                        points_required(order_total),
                        f"Order payment: {order.order_number}",
                        order=order,
                    )

                PaymentService.record_payment(
                    order, order_total, payment_method, confirmed_by=confirmed_by
                )
                order.payment_confirmed_at = timezone.now()
                order.payment_confirmed_by = confirmed_by or ""
                order.save(update_fields=["payment_confirmed_at", "payment_confirmed_by", "updated_at"])
                order.add_timeline("Payment Confirmed", confirmed_by or "Customer", payment_method)

            logger.info(
                f"Created order {order.order_number} for table {table.table_number} "
                f"(total={order_total}, payment={status_for_payment})"
            )

            if self.events is not None:
                self.events.order_created(order)

        return order

    def confirm_payment(
        self,
        order_id,
        method,
        is_manual_flag=False,
        card_machine_used=False,
        notes=None,
        confirmed_by=None,
    ) -> Order:
        if not method:
            raise ValidationError({"payment_method": "Payment method is required"})

        with transaction.atomic():
            order = self._lock(order_id)
            if order.payment_status == Order.PaymentStatus.PAID:
                raise AlreadyPaid(f"Order {order.order_number} is already paid")
            if order.status not in Order.ACTIVE_STATUSES:
                raise InvalidTransition(
                    f"Cannot take payment for a {order.status} order",
                    details={"order_id": str(order.pk), "status": order.status},
                )

            now = timezone.now()
            updated = Order.objects.filter(
                pk=order.pk,
                payment_status=Order.PaymentStatus.UNPAID,
                status__in=Order.ACTIVE_STATUSES,
            ).update(
                payment_status=Order.PaymentStatus.PAID,
                payment_method=method,
                payment_confirmed_at=now,
                payment_confirmed_by=confirmed_by or "",
                updated_at=now,
            )
            if not updated:
                raise AlreadyPaid(f"Order {order.order_number} is already paid")
            order.refresh_from_db()

            PaymentService.record_payment(
                order,
                order.total,
                method,
                is_manual_flag=is_manual_flag,
                card_machine_used=card_machine_used,
                confirmed_by=confirmed_by,
                notes=notes,
            )
            if method == WALLET_METHOD:
                WalletService.debit_for_order(order.customer, order.total, order)

            order.add_timeline("Payment Confirmed", confirmed_by or "Cashier", notes or method)
            logger.info(f"Payment confirmed for order {order.order_number} via {method}")
            self._publish_updated(order)

        return order

    def approve_order(self, order_id, actor="Cashier") -> Order:
        with transaction.atomic():
            order = self._lock(order_id)
            if order.status != Order.OrderStatus.PENDING:
                raise InvalidTransition(
                    f"Order is already {order.status}",
                    details={"order_id": str(order.pk), "status": order.status},
                )
            if order.is_cashier_order and not order.is_paid:
                raise PaymentRequired()

            self._transition(
                order,
                Order.OrderStatus.PENDING,
                status=Order.OrderStatus.APPROVED,
                approved_at=timezone.now(),
            )
            order.add_timeline("Order Approved", actor)

            if order.customer_id and order.is_paid:
                LoyaltyService.earn_points(
                    order.customer,
                    points_earned(order.total),
                    order=order,
                    description=f"Points earned for order {order.order_number}",
                )

            logger.info(f"Order {order.order_number} approved by {actor}")

            if self.printer is not None:
                order_pk = order.pk
                transaction.on_commit(lambda: self.printer.enqueue(order_pk))
            self._publish_updated(order)

        return order

    def reject_order(self, order_id, reason="", actor="Cashier") -> Order:
        """
        Rejects a pending order and frees its table once no other pending or
        approved order sits on it. Approved orders have
        already gone to the kitchen and can only be served.
        """
        with transaction.atomic():
            order = self._lock(order_id)
            self._transition(order, Order.OrderStatus.PENDING, status=Order.OrderStatus.REJECTED)
            order.add_timeline("Order Rejected", actor, reason)
            TableService.mark_idle_if_unused(order.table)

            logger.info(f"Order {order.order_number} rejected by {actor}: {reason}")
            self._publish_updated(order)

        return order

    def mark_served(self, order_id, actor="Cashier") -> Order:
        # The table stays occupied until the cashier releases it.
        with transaction.atomic():
            order = self._lock(order_id)
            self._transition(
                order,
                Order.OrderStatus.APPROVED,
                status=Order.OrderStatus.SERVED,
                served_at=timezone.now(),
            )
            order.add_timeline("Order Served", actor)

            logger.info(f"Order {order.order_number} served")
            self._publish_updated(order)

        return order
