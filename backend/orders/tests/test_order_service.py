"""
Order state machine tests.

Covers creation, payment confirmation, approval, rejection and serving,
including the table and loyalty side effects of each transition.
"""
import re
from decimal import Decimal

import pytest
from rest_framework.exceptions import ValidationError

from cafeflow.exceptions import (
    AlreadyPaid,
    InsufficientBalance,
    InsufficientPoints,
    InvalidTransition,
    NotFound,
    PaymentRequired,
)
from customers.models import LoyaltyAccount, LoyaltyTransaction, Wallet
from customers.services import LoyaltyService, WalletService
from orders.models import Order
from orders.services import OrderService
from payments.models import Payment
from printing.models import PrintJob
from tables.models import Table


@pytest.mark.django_db
class TestCreateOrder:
    def test_customer_order_starts_pending_and_occupies_table(self, make_order, table, event_bus):
        order = make_order()

        table.refresh_from_db()
        assert order.status == Order.OrderStatus.PENDING
        assert order.payment_status == Order.PaymentStatus.UNPAID
        assert order.total == Decimal("400.00")
        assert order.table_number == "T-01"
        assert table.status == Table.TableStatus.OCCUPIED
        assert [e[0] for e in event_bus.events] == ["order:new"]

    def test_items_are_stored_in_submission_order(self, make_order):
        order = make_order()

        items = list(order.items.all())
        assert [item.name for item in items] == ["Cappuccino", "Croissant"]
        assert items[0].quantity == 2
        assert items[0].unit_price == Decimal("150.00")
        assert items[0].modifiers == ["oat milk"]
        assert items[1].modifiers == []
        assert items[0].line_total == Decimal("300.00")

    def test_order_number_format(self, make_order):
        order = make_order()
        assert re.fullmatch(r"ORD-\d{6}-\d{3}", order.order_number)

    def test_explicit_total_overrides_computed_total(self, make_order):
        order = make_order(total="375.50")
        assert order.total == Decimal("375.50")

    def test_timeline_records_creator(self, make_order):
        customer_order = make_order()
        cashier_order = make_order(is_cashier_order=True)

        assert list(customer_order.timeline.values_list("action", "actor")) == [
            ("Order Created", "Customer")
        ]
        assert list(cashier_order.timeline.values_list("action", "actor")) == [
            ("Order Created", "Cashier")
        ]

    def test_cashier_order_starts_unpaid_even_with_method(self, make_order):
        order = make_order(is_cashier_order=True, payment_method="Cash")

        assert order.payment_status == Order.PaymentStatus.UNPAID
        assert not Payment.objects.filter(order=order).exists()

    def test_customer_order_with_method_is_paid_and_recorded(self, make_order):
        order = make_order(payment_method="UPI - GPay", confirmed_by="kiosk")

        payment = Payment.objects.get(order=order)
        assert order.payment_status == Order.PaymentStatus.PAID
        assert payment.payment_type == Payment.PaymentType.UPI
        assert payment.amount == Decimal("400.00")
        assert order.payment_confirmed_by == "kiosk"
        assert "Payment Confirmed" in order.timeline.values_list("action", flat=True)

    def test_explicit_payment_status_wins(self, make_order):
        """Pay Later: a method is named but the order is explicitly unpaid."""
        order = make_order(payment_method="Cash", payment_status="unpaid")

        assert order.payment_status == Order.PaymentStatus.UNPAID
        assert not Payment.objects.filter(order=order).exists()

    def test_rejects_refunded_as_initial_payment_status(self, make_order):
        with pytest.raises(ValidationError):
            make_order(payment_status="refunded")

    def test_empty_items_rejected(self, make_order):
        with pytest.raises(ValidationError):
            make_order(items=[])

        assert Order.objects.count() == 0

    @pytest.mark.parametrize(
        "bad_item",
        [
            {"name": "Latte", "quantity": 0, "unit_price": "120.00"},
            {"name": "Latte", "quantity": 1, "unit_price": "-1.00"},
            {"quantity": 1, "unit_price": "120.00"},
        ],
    )
    def test_invalid_items_rejected(self, make_order, bad_item):
        with pytest.raises(ValidationError):
            make_order(items=[bad_item])

    def test_price_alias_accepted(self, make_order):
        order = make_order(items=[{"name": "Espresso", "quantity": 3, "price": "90"}])
        assert order.total == Decimal("270.00")

    def test_unknown_table(self, make_order):
        with pytest.raises(NotFound):
            make_order(table="T-99")

    def test_table_resolved_by_qr_slug_and_number(self, order_service, two_items, db):
        from tables.services import TableService

        table = TableService.create_table("T-07", qr_slug="window-seat")

        by_slug = order_service.create_order(table="window-seat", items=two_items)
        by_number = order_service.create_order(table="T-07", items=two_items)

        assert by_slug.table_id == table.pk
        assert by_number.table_id == table.pk

    def test_new_order_reclaims_idle_table(self, make_order, table, table_service):
        make_order()
        table_service.release_table(table.pk)
        table.refresh_from_db()
        assert table.status == Table.TableStatus.IDLE

        make_order()

        table.refresh_from_db()
        assert table.status == Table.TableStatus.OCCUPIED

    def test_customer_created_from_phone(self, make_order):
        order = make_order(customer_phone="9000000001", customer_name="Ravi")

        assert order.customer is not None
        assert order.customer.name == "Ravi"
        assert LoyaltyAccount.objects.get(customer=order.customer).points == 0

    def test_loyalty_points_payment_redeems_rounded_up_total(self, make_order, customer):
        LoyaltyService.earn_points(customer, 500)

        order = make_order(
            total="399.20",
            payment_method="Loyalty Points",
            customer_phone=customer.phone,
        )

        account = LoyaltyAccount.objects.get(customer=customer)
        assert order.payment_status == Order.PaymentStatus.PAID
        assert account.points == 100
        assert account.redeemed_points == 400
        assert Payment.objects.get(order=order).payment_type == Payment.PaymentType.LOYALTY

    def test_insufficient_points_aborts_creation(self, make_order, customer, table):
        """
        CRITICAL: A failed points redemption must not leave a half-created order.

        Scenario:
        - Customer holds 50 points
        - Customer orders 400.00 paying with loyalty points
        - Expected: InsufficientPoints, no order, no payment, table untouched
        """
        LoyaltyService.earn_points(customer, 50)

        with pytest.raises(InsufficientPoints):
            make_order(payment_method="Loyalty Points", customer_phone=customer.phone)

        table.refresh_from_db()
        assert Order.objects.count() == 0
        assert Payment.objects.count() == 0
        assert table.status == Table.TableStatus.IDLE
        assert LoyaltyService.get_balance(customer) == 50


@pytest.mark.django_db
class TestConfirmPayment:
    def test_marks_unpaid_order_paid(self, make_order, order_service, event_bus):
        order = make_order(is_cashier_order=True)
        event_bus.clear()

        order = order_service.confirm_payment(
            order.pk, "Card", card_machine_used=True, confirmed_by="Cashier 1"
        )

        payment = Payment.objects.get(order=order)
        assert order.status == Order.OrderStatus.PENDING
        assert order.payment_status == Order.PaymentStatus.PAID
        assert order.payment_method == "Card"
        assert order.payment_confirmed_at is not None
        assert payment.payment_type == Payment.PaymentType.CARD
        assert payment.card_machine_used is True
        assert payment.confirmed_by == "Cashier 1"
        assert [e[0] for e in event_bus.events] == ["order:update"]

    def test_second_confirmation_rejected(self, make_order, order_service):
        order = make_order(is_cashier_order=True)
        order_service.confirm_payment(order.pk, "Cash")

        with pytest.raises(AlreadyPaid):
            order_service.confirm_payment(order.pk, "Cash")

        assert Payment.objects.filter(order=order).count() == 1

    def test_allowed_after_approval(self, make_order, order_service):
        order = make_order(payment_method="Cash", payment_status="unpaid")
        order_service.approve_order(order.pk, "Cashier")

        order = order_service.confirm_payment(order.pk, "Cash")

        assert order.status == Order.OrderStatus.APPROVED
        assert order.payment_status == Order.PaymentStatus.PAID

    def test_rejected_order_cannot_be_paid(self, make_order, order_service):
        order = make_order(is_cashier_order=True)
        order_service.reject_order(order.pk, "Customer left", "Cashier")

        with pytest.raises(InvalidTransition):
            order_service.confirm_payment(order.pk, "Cash")

    def test_unknown_order(self, order_service, db):
        with pytest.raises(NotFound):
            order_service.confirm_payment("7b0c1f8e-0000-4000-8000-000000000000", "Cash")

    def test_wallet_payment_debits_wallet(self, make_order, order_service, customer):
        Wallet.objects.create(customer=customer, balance=Decimal("500.00"))
        order = make_order(is_cashier_order=True, customer_phone=customer.phone)

        order_service.confirm_payment(order.pk, "Wallet")

        wallet = Wallet.objects.get(customer=customer)
        txn = wallet.transactions.get()
        assert wallet.balance == Decimal("100.00")
        assert txn.transaction_type == "payment"
        assert txn.status == "approved"
        assert txn.balance_before == Decimal("500.00")
        assert txn.balance_after == Decimal("100.00")

    def test_wallet_insufficient_balance_leaves_order_unpaid(self, make_order, order_service, customer):
        Wallet.objects.create(customer=customer, balance=Decimal("50.00"))
        order = make_order(is_cashier_order=True, customer_phone=customer.phone)

        with pytest.raises(InsufficientBalance):
            order_service.confirm_payment(order.pk, "Wallet")

        order.refresh_from_db()
        assert order.payment_status == Order.PaymentStatus.UNPAID
        assert not Payment.objects.filter(order=order).exists()
        assert WalletService.get_balance(customer) == Decimal("50.00")

    def test_wallet_payment_without_customer(self, make_order, order_service):
        order = make_order(is_cashier_order=True)

        with pytest.raises(NotFound):
            order_service.confirm_payment(order.pk, "Wallet")

    def test_method_required(self, make_order, order_service):
        order = make_order(is_cashier_order=True)

        with pytest.raises(ValidationError):
            order_service.confirm_payment(order.pk, "")


@pytest.mark.django_db
class TestApproveOrder:
    def test_unpaid_cashier_order_requires_payment(self, make_order, order_service):
        order = make_order(is_cashier_order=True)

        with pytest.raises(PaymentRequired):
            order_service.approve_order(order.pk, "Cashier")

        order.refresh_from_db()
        assert order.status == Order.OrderStatus.PENDING

    def test_unpaid_customer_order_can_be_approved(self, make_order, order_service):
        order = order_service.approve_order(make_order().pk, "Cashier")

        assert order.status == Order.OrderStatus.APPROVED
        assert order.approved_at is not None

    def test_cashier_order_paid_then_approved(
        self, make_order, order_service, event_bus, table, django_capture_on_commit_callbacks
    ):
        """
        CRITICAL: Cashier flow from unpaid order to kitchen ticket.

        Scenario:
        - Cashier order of 2 items totalling 400, unpaid
        - confirm_payment(Cash), then approve
        - Expected: approved, paid, table occupied, one order:update from the
          approval and exactly one print job queued
        """
        order = make_order(is_cashier_order=True)
        assert order.total == Decimal("400.00")
        order_service.confirm_payment(order.pk, "Cash")
        event_bus.clear()

        with django_capture_on_commit_callbacks(execute=True):
            order = order_service.approve_order(order.pk, "Cashier")

        table.refresh_from_db()
        assert order.status == Order.OrderStatus.APPROVED
        assert order.payment_status == Order.PaymentStatus.PAID
        assert table.status == Table.TableStatus.OCCUPIED
        assert len(event_bus.named("order:update")) == 1
        assert PrintJob.objects.filter(order=order).count() == 1
        assert event_bus.printer_statuses().count("queued") == 1

    def test_print_job_only_after_commit(self, make_order, order_service):
        order = make_order()

        order_service.approve_order(order.pk, "Cashier")

        # Without a commit the enqueue callback has not run yet.
        assert not PrintJob.objects.filter(order=order).exists()

    def test_paid_customer_order_earns_floor_of_total(self, make_order, order_service, customer):
        order = make_order(
            total="249.99", payment_method="Cash", customer_phone=customer.phone
        )

        order_service.approve_order(order.pk, "Cashier")

        txn = LoyaltyTransaction.objects.get(account__customer=customer)
        assert txn.points == 249
        assert txn.transaction_type == "earned"
        assert txn.order_id == order.pk
        assert LoyaltyService.get_balance(customer) == 249

    def test_no_points_for_unpaid_order(self, make_order, order_service, customer):
        order = make_order(customer_phone=customer.phone)

        order_service.approve_order(order.pk, "Cashier")

        assert not LoyaltyTransaction.objects.filter(account__customer=customer).exists()

    def test_zero_points_not_recorded(self, make_order, order_service, customer):
        order = make_order(total="0.50", payment_method="Cash", customer_phone=customer.phone)

        order_service.approve_order(order.pk, "Cashier")

        assert not LoyaltyTransaction.objects.filter(account__customer=customer).exists()

    def test_cannot_approve_twice(self, make_order, order_service):
        order = make_order()
        order_service.approve_order(order.pk, "Cashier")

        with pytest.raises(InvalidTransition):
            order_service.approve_order(order.pk, "Cashier")

    def test_service_without_collaborators(self, make_order):
        """Printing and publishing are skipped when no collaborators are given."""
        order = make_order()

        approved = OrderService().approve_order(order.pk, "Cashier")

        assert approved.status == Order.OrderStatus.APPROVED


@pytest.mark.django_db
class TestRejectOrder:
    def test_reject_pending_order_frees_table(self, make_order, order_service, table, customer):
        """
        Scenario:
        - Pending paid customer order at T-01
        - Cashier rejects it
        - Expected: rejected, table idle, no points earned
        """
        order = make_order(payment_method="Cash", customer_phone=customer.phone)

        order = order_service.reject_order(order.pk, "Out of croissants", "Cashier")

        table.refresh_from_db()
        assert order.status == Order.OrderStatus.REJECTED
        assert table.status == Table.TableStatus.IDLE
        assert LoyaltyService.get_balance(customer) == 0
        entry = order.timeline.get(action="Order Rejected")
        assert entry.note == "Out of croissants"

    def test_approved_order_cannot_be_rejected(self, make_order, order_service):
        order = make_order()
        order_service.approve_order(order.pk, "Cashier")

        with pytest.raises(InvalidTransition):
            order_service.reject_order(order.pk, "Too late", "Cashier")

        order.refresh_from_db()
        assert order.status == Order.OrderStatus.APPROVED

    def test_rejected_order_is_terminal(self, make_order, order_service):
        order = make_order()
        order_service.reject_order(order.pk, "", "Cashier")

        with pytest.raises(InvalidTransition):
            order_service.approve_order(order.pk, "Cashier")
        with pytest.raises(InvalidTransition):
            order_service.mark_served(order.pk, "Cashier")


@pytest.mark.django_db
class TestMarkServed:
    def test_served_keeps_table_occupied(self, make_order, order_service, table):
        order = make_order()
        order_service.approve_order(order.pk, "Cashier")

        order = order_service.mark_served(order.pk, "Cashier")

        table.refresh_from_db()
        assert order.status == Order.OrderStatus.SERVED
        assert order.served_at is not None
        assert table.status == Table.TableStatus.OCCUPIED

    def test_pending_order_cannot_be_served(self, make_order, order_service):
        order = make_order()

        with pytest.raises(InvalidTransition):
            order_service.mark_served(order.pk, "Cashier")

    def test_full_timeline(self, make_order, order_service):
        order = make_order(is_cashier_order=True)
        order_service.confirm_payment(order.pk, "Cash", confirmed_by="Cashier 1")
        order_service.approve_order(order.pk, "Cashier 1")
        order_service.mark_served(order.pk, "Cashier 1")

        actions = list(order.timeline.values_list("action", flat=True))
        assert actions == ["Order Created", "Payment Confirmed", "Order Approved", "Order Served"]


@pytest.mark.django_db
class TestOrderQueries:
    def test_get_order(self, make_order, order_service):
        order = make_order()
        assert order_service.get_order(order.pk) == order

    def test_get_order_unknown_or_malformed_id(self, order_service):
        with pytest.raises(NotFound):
            order_service.get_order("not-a-uuid")

    def test_list_orders_filters(self, make_order, order_service, second_table):
        first = make_order()
        second = make_order(table=second_table.pk)
        order_service.approve_order(second.pk, "Cashier")

        assert order_service.list_orders() == [second, first]
        assert order_service.list_orders(status="pending") == [first]
        assert order_service.list_orders(table="T-02") == [second]
        assert order_service.list_orders(limit=1) == [second]
