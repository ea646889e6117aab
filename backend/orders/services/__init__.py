"""
Orders services package.

- OrderService: order lifecycle state machine (create, pay, approve, reject, serve)
"""

from .order_service import OrderService

__all__ = [
    "OrderService",
]
