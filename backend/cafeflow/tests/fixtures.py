"""
Shared test fixtures for all backend tests.

This module provides reusable pytest fixtures for tables, customers, orders
and the collaborators (printer, event bus) the order services are built with.
"""
from decimal import Decimal

import pytest
from django.apps import apps

from customers.services import CustomerService
from orders.services import OrderService
from printing.fault_policy import ScriptedFaultPolicy
from printing.services import PrinterService
from tables.services import TableService


class RecordingEventBus:
    """
    Stand-in for notifications.services.EventBus that records events
    instead of sending them to a channel layer.
    """

    def __init__(self):
        self.events = []

    def order_created(self, order):
        self.events.append(("order:new", {"order_id": order.pk, "status": order.status}))

    def order_updated(self, order):
        self.events.append(
            (
                "order:update",
                {
                    "order_id": order.pk,
                    "status": order.status,
                    "payment_status": order.payment_status,
                },
            )
        )

    def kot_updated(self, order, print_status):
        self.events.append(("kot:update", {"order_id": order.pk, "print_status": print_status}))

    def printer_updated(self, order_id, status, health):
        self.events.append(
            ("printer:update", {"order_id": order_id, "status": status, "health": health})
        )

    def named(self, name):
        return [data for event, data in self.events if event == name]

    def printer_statuses(self):
        return [data["status"] for data in self.named("printer:update")]

    def clear(self):
        self.events.clear()


# ============================================================================
# COLLABORATOR FIXTURES
# ============================================================================

@pytest.fixture
def event_bus():
    return RecordingEventBus()


@pytest.fixture
def fault_policy():
    """Prints everything unless a test scripts failures on it."""
    return ScriptedFaultPolicy()


@pytest.fixture
def printer(event_bus, fault_policy, monkeypatch):
    """
    PrinterService with no delays, installed as the process-wide printer so
    the celery tasks (eager in tests) use it too.
    """
    service = PrinterService(
        fault_policy=fault_policy,
        events=event_bus,
        base_delay=0,
        attempt_delay=0,
        backoff_unit=0,
        offline_cooldown=0,
        max_retries=3,
    )
    monkeypatch.setattr(apps.get_app_config("printing"), "printer", service)
    return service


@pytest.fixture
def order_service(printer, event_bus):
    return OrderService(printer=printer, events=event_bus)


@pytest.fixture
def table_service(event_bus):
    return TableService(events=event_bus)


# ============================================================================
# MODEL FIXTURES
# ============================================================================

@pytest.fixture
def table(db):
    return TableService.create_table("T-01")


@pytest.fixture
def second_table(db):
    return TableService.create_table("T-02")


@pytest.fixture
def customer(db):
    return CustomerService.get_or_create_by_phone("9876543210", name="Asha")


@pytest.fixture
def two_items():
    """Two line items totalling 400.00"""
    return [
        {"name": "Cappuccino", "quantity": 2, "unit_price": "150.00", "modifiers": ["oat milk"]},
        {"name": "Croissant", "quantity": 1, "unit_price": "100.00"},
    ]


@pytest.fixture
def make_order(order_service, table, two_items):
    """
    Factory for orders placed through the state machine.

    Usage:
        order = make_order(is_cashier_order=True)
    """

    def _make_order(**kwargs):
        kwargs.setdefault("table", table.pk)
        kwargs.setdefault("items", two_items)
        return order_service.create_order(**kwargs)

    return _make_order


@pytest.fixture
def paid_customer_order(make_order, customer):
    """A customer order of 400.00 paid by cash at creation"""
    return make_order(
        payment_method="Cash",
        customer_phone=customer.phone,
        customer_name=customer.name,
    )


ORDER_TOTAL = Decimal("400.00")
