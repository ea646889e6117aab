from decimal import Decimal

import pytest

from payments.models import Payment
from payments.services import PaymentService


class TestPaymentTypeFor:
    @pytest.mark.parametrize(
        "method, expected",
        [
            ("UPI", "upi"),
            ("UPI - PhonePe", "upi"),
            ("Card", "card"),
            ("Debit card", "card"),
            ("Wallet", "wallet"),
            ("Loyalty Points", "loyalty"),
            ("Cash", "cash"),
            ("Pay at counter", "cash"),
            ("", "cash"),
            (None, "cash"),
        ],
    )
    def test_method_labels(self, method, expected):
        assert PaymentService.payment_type_for(method) == expected


@pytest.mark.django_db
class TestRecordPayment:
    def test_records_ledger_entry(self, make_order, customer):
        order = make_order(is_cashier_order=True, customer_phone=customer.phone)

        payment = PaymentService.record_payment(
            order,
            "400",
            "Cash",
            is_manual_flag=True,
            confirmed_by="Cashier 2",
            notes="Exact change",
        )

        assert payment.amount == Decimal("400.00")
        assert payment.payment_type == Payment.PaymentType.CASH
        assert payment.customer == customer
        assert payment.is_manual_flag is True
        assert payment.notes == "Exact change"
