"""
Typed domain errors raised by the order, ledger and refund services.

Every error carries a stable ``code`` so the HTTP and socket layers can map a
rejected operation to a reason string without parsing messages.
"""


class CafeFlowError(Exception):
    """Base class for all domain errors."""

    code = "error"
    default_message = "Operation rejected"

    def __init__(self, message=None, details=None):
        self.message = message or self.default_message
        self.details = details or {}
        super().__init__(self.message)

    def as_dict(self):
        return {"code": self.code, "message": self.message, **self.details}


class NotFound(CafeFlowError):
    """Unknown order, table, refund, customer or wallet."""

    code = "not_found"
    default_message = "Record not found"


class InvalidTransition(CafeFlowError):
    """The requested state change is not legal from the current status."""

    code = "invalid_transition"
    default_message = "Invalid status transition"


class PaymentRequired(CafeFlowError):
    code = "payment_required"
    default_message = "Payment must be confirmed before approving cashier order"


class AlreadyPaid(CafeFlowError):
    code = "already_paid"
    default_message = "Order already paid"


class AlreadyProcessed(CafeFlowError):
    code = "already_processed"
    default_message = "Request already processed"


class InsufficientPoints(CafeFlowError):
    code = "insufficient_points"
    default_message = "Insufficient loyalty points"


class InsufficientBalance(CafeFlowError):
    code = "insufficient_balance"
    default_message = "Insufficient wallet balance"


class OrderNotPaid(CafeFlowError):
    code = "order_not_paid"
    default_message = "Can only refund paid orders"
