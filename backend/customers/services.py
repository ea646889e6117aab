import logging
from decimal import Decimal

from django.conf import settings
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import transaction
from django.db.models import F
from django.utils import timezone
from rest_framework.exceptions import ValidationError

from cafeflow.exceptions import (
    AlreadyProcessed,
    InsufficientBalance,
    InsufficientPoints,
    NotFound,
)
from cafeflow.money import quantize
from .models import (
    Customer,
    LoyaltyAccount,
    LoyaltyTransaction,
    TopupOffer,
    Wallet,
    WalletTransaction,
)

logger = logging.getLogger(__name__)


class CustomerService:
    @staticmethod
    @transaction.atomic
    def get_or_create_by_phone(phone: str, name: str = None, email: str = None) -> Customer:
        """
        Looks a customer up by phone, creating it (with an empty loyalty
        account) the first time the number is seen. A name supplied later
        fills in a customer that was created without one.
        """
        phone = (phone or "").strip()
        if not phone:
            raise ValidationError({"customer_phone": "Phone number is required"})

        customer, created = Customer.objects.get_or_create(
            phone=phone,
            defaults={"name": (name or "").strip(), "email": (email or "").strip()},
        )
        if created:
            logger.info(f"Created customer {customer.id} for phone ending {phone[-4:]}")
        elif name and not customer.name:
            customer.name = name.strip()
            customer.save(update_fields=["name", "updated_at"])

        LoyaltyAccount.objects.get_or_create(customer=customer)
        return customer

    @staticmethod
    def get_customer(customer_id) -> Customer:
        try:
            return Customer.objects.get(pk=customer_id)
        except (Customer.DoesNotExist, DjangoValidationError, ValueError):
            raise NotFound(f"Customer {customer_id} not found")


class LoyaltyService:
    """
    Points ledger. Every balance change writes a LoyaltyTransaction in the
    same transaction, so the balance always equals the sum of the deltas.
    """

    @staticmethod
    def _locked_account(customer: Customer) -> LoyaltyAccount:
        account, _ = LoyaltyAccount.objects.select_for_update().get_or_create(
            customer=customer
        )
        return account

    @staticmethod
    def _credit(customer, points, transaction_type, order=None, description=""):
        account = LoyaltyService._locked_account(customer)
        LoyaltyAccount.objects.filter(pk=account.pk).update(
            points=F("points") + points,
            earned_points=F("earned_points") + points,
        )
        return LoyaltyTransaction.objects.create(
            account=account,
            transaction_type=transaction_type,
            points=points,
            order=order,
            description=description,
        )

    @staticmethod
    @transaction.atomic
    def earn_points(customer: Customer, points: int, order=None, description: str = ""):
        """
        Adds earned points to the customer's balance. Returns the ledger row,
        or None when there is nothing to earn.
        """
        points = int(points)
        if points <= 0:
            return None

        txn = LoyaltyService._credit(
            customer,
            points,
            LoyaltyTransaction.TransactionType.EARNED,
            order=order,
            description=description or f"Earned {points} points",
        )
        logger.info(f"Customer {customer.id} earned {points} points")
        return txn

    @staticmethod
    @transaction.atomic
    def credit_topup_points(customer: Customer, points: int, description: str = ""):
        points = int(points)
        if points <= 0:
            raise ValidationError({"points": "Top-up points must be positive"})

        return LoyaltyService._credit(
            customer,
            points,
            LoyaltyTransaction.TransactionType.TOPUP,
            description=description or f"Top-up: {points} points",
        )

    @staticmethod
    @transaction.atomic
    def redeem_points(customer: Customer, points: int, description: str = "", order=None):
        """
        Spends points. Raises InsufficientPoints, without writing anything,
        when the balance does not cover the request.
        """
        points = int(points)
        if points <= 0:
            raise ValidationError({"points": "Points to redeem must be positive"})

        account = LoyaltyService._locked_account(customer)
        if account.points < points:
            raise InsufficientPoints(
                f"Insufficient loyalty points: {account.points} available, {points} required",
                details={"available": account.points, "required": points},
            )

        LoyaltyAccount.objects.filter(pk=account.pk).update(
            points=F("points") - points,
            redeemed_points=F("redeemed_points") + points,
        )
        txn = LoyaltyTransaction.objects.create(
            account=account,
            transaction_type=LoyaltyTransaction.TransactionType.REDEEMED,
            points=-points,
            order=order,
            description=description or f"Redeemed {points} points",
        )
        logger.info(f"Customer {customer.id} redeemed {points} points")
        return txn

    @staticmethod
    def get_balance(customer: Customer) -> int:
        account = LoyaltyAccount.objects.filter(customer=customer).first()
        return account.points if account else 0


class WalletService:
    @staticmethod
    def _locked_wallet(customer: Customer, create: bool = False) -> Wallet:
        if create:
            wallet, created = Wallet.objects.select_for_update().get_or_create(
                customer=customer
            )
            if created:
                logger.info(f"Opened wallet for customer {customer.id}")
            return wallet
        try:
            return Wallet.objects.select_for_update().get(customer=customer)
        except Wallet.DoesNotExist:
            raise NotFound(f"Wallet not found for customer {customer.id}")

    @staticmethod
    def _apply(wallet, amount, transaction_type, status, order=None, description="",
               points_used=0, approved_by=""):
        balance_before = wallet.balance
        balance_after = balance_before + amount
        Wallet.objects.filter(pk=wallet.pk).update(balance=F("balance") + amount)
        wallet.balance = balance_after

        approved = status == WalletTransaction.TransactionStatus.APPROVED
        return WalletTransaction.objects.create(
            wallet=wallet,
            transaction_type=transaction_type,
            status=status,
            amount=abs(amount),
            balance_before=balance_before,
            balance_after=balance_after,
            order=order,
            points_used=points_used,
            description=description,
            approved_at=timezone.now() if approved else None,
            approved_by=approved_by if approved else "",
        )

    @staticmethod
    @transaction.atomic
    def debit_for_order(customer: Customer, amount, order) -> WalletTransaction:
        if customer is None:
            raise NotFound("Wallet payments require a customer")

        amount = quantize(amount)
        wallet = WalletService._locked_wallet(customer)
        if wallet.balance < amount:
            raise InsufficientBalance(
                f"Insufficient wallet balance: {wallet.balance} available, {amount} required",
                details={"available": str(wallet.balance), "required": str(amount)},
            )

        txn = WalletService._apply(
            wallet,
            -amount,
            WalletTransaction.TransactionType.PAYMENT,
            WalletTransaction.TransactionStatus.APPROVED,
            order=order,
            description=f"Payment for order {order.order_number}",
            approved_by="system",
        )
        logger.info(f"Debited {amount} from wallet of customer {customer.id} for {order.order_number}")
        return txn

    @staticmethod
    @transaction.atomic
    def credit_refund(customer: Customer, amount, order) -> WalletTransaction:
        """
        Credits a refund back to the wallet, opening an empty wallet first if
        the customer never had one.
        """
        amount = quantize(amount)
        wallet = WalletService._locked_wallet(customer, create=True)
        txn = WalletService._apply(
            wallet,
            amount,
            WalletTransaction.TransactionType.REFUND,
            WalletTransaction.TransactionStatus.APPROVED,
            order=order,
            description=f"Refund for order {order.order_number}",
            approved_by="system",
        )
        logger.info(f"Refunded {amount} to wallet of customer {customer.id} for {order.order_number}")
        return txn

    @staticmethod
    @transaction.atomic
    def top_up_from_points(customer: Customer, points: int, rate=None) -> WalletTransaction:
        """
        Converts loyalty points into wallet credit.

        The points are redeemed and the balance credited immediately; the
        resulting top-up stays PENDING until a manager approves it.
        """
        rate = Decimal(str(rate if rate is not None else settings.WALLET_POINTS_RATE))
        points = int(points)
        amount = quantize(Decimal(points) * rate)

        LoyaltyService.redeem_points(customer, points, f"Wallet top-up: {points} points")

        wallet = WalletService._locked_wallet(customer, create=True)
        txn = WalletService._apply(
            wallet,
            amount,
            WalletTransaction.TransactionType.TOPUP,
            WalletTransaction.TransactionStatus.PENDING,
            points_used=points,
            description=f"Top-up using {points} loyalty points",
        )
        logger.info(f"Customer {customer.id} converted {points} points into {amount} wallet credit")
        return txn

    @staticmethod
    @transaction.atomic
    def approve_topup(transaction_id, approved_by: str) -> WalletTransaction:
        # The balance was credited when the top-up was requested.
        updated = WalletTransaction.objects.filter(
            pk=transaction_id,
            transaction_type=WalletTransaction.TransactionType.TOPUP,
            status=WalletTransaction.TransactionStatus.PENDING,
        ).update(
            status=WalletTransaction.TransactionStatus.APPROVED,
            approved_at=timezone.now(),
            approved_by=approved_by or "",
        )
        if not updated:
            raise AlreadyProcessed("Transaction not found or already processed")

        txn = WalletTransaction.objects.get(pk=transaction_id)
        logger.info(f"Wallet top-up {txn.id} approved by {approved_by}")
        return txn

    @staticmethod
    def get_balance(customer: Customer) -> Decimal:
        wallet = Wallet.objects.filter(customer=customer).first()
        return wallet.balance if wallet else Decimal("0.00")


class TopupService:
    """Cash top-ups sold at the counter in exchange for loyalty points."""

    @staticmethod
    def find_offer(amount, offer=None):
        amount = quantize(amount)
        if offer is not None:
            if not isinstance(offer, TopupOffer):
                offer = TopupOffer.objects.filter(pk=offer).first()
            # An offer only applies to its own amount.
            if offer is not None and quantize(offer.amount) == amount:
                return offer
            return None
        return TopupOffer.objects.filter(amount=amount, is_active=True).order_by(
            "display_order"
        ).first()

    @staticmethod
    @transaction.atomic
    def process_topup(customer: Customer, amount, offer=None) -> dict:
        amount = quantize(amount)
        if amount <= 0:
            raise ValidationError({"amount": "Top-up amount must be positive"})

        matched = TopupService.find_offer(amount, offer)
        if matched:
            base_points = matched.points
            bonus_points = matched.bonus_points
        else:
            base_points = int(amount)
            bonus_points = 0
        total_points = base_points + bonus_points

        if bonus_points:
            description = f"Top-up: {amount} = {base_points} points + {bonus_points} bonus points"
        else:
            description = f"Top-up: {amount} = {base_points} points"

        txn = LoyaltyService.credit_topup_points(customer, total_points, description)
        logger.info(f"Customer {customer.id} topped up {amount} for {total_points} points")

        return {
            "amount": amount,
            "base_points": base_points,
            "bonus_points": bonus_points,
            "total_points": total_points,
            "offer": matched,
            "transaction": txn,
        }
