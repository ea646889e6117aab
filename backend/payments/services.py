import logging

from django.db import transaction

from cafeflow.money import quantize
from .models import Payment

logger = logging.getLogger(__name__)


class PaymentService:
    @staticmethod
    def payment_type_for(method: str) -> str:
        """
        Maps a free-text method label onto a payment type. Anything that is not
        recognisably UPI, card, wallet or loyalty points is treated as cash.
        """
        label = (method or "").lower()
        if "upi" in label:
            return Payment.PaymentType.UPI
        if "card" in label:
            return Payment.PaymentType.CARD
        if "wallet" in label:
            return Payment.PaymentType.WALLET
        if "loyalty" in label or "points" in label:
            return Payment.PaymentType.LOYALTY
        return Payment.PaymentType.CASH

    @staticmethod
    @transaction.atomic
    def record_payment(
        order,
        amount,
        method: str,
        is_manual_flag: bool = False,
        card_machine_used: bool = False,
        confirmed_by: str = None,
        notes: str = None,
    ) -> Payment:
        payment = Payment.objects.create(
            order=order,
            customer=order.customer,
            amount=quantize(amount),
            payment_method=method,
            payment_type=PaymentService.payment_type_for(method),
            is_manual_flag=is_manual_flag,
            card_machine_used=card_machine_used,
            confirmed_by=confirmed_by or "",
            notes=notes or "",
        )
        logger.info(
            f"Recorded {payment.payment_type} payment of {payment.amount} for order {order.order_number}"
        )
        return payment
