"""
Websocket viewer tests.

These run with transaction=True: the consumers read the database from a
worker thread, which cannot see data inside the test's open transaction.
"""
import pytest
from channels.db import database_sync_to_async
from channels.layers import get_channel_layer
from channels.testing import WebsocketCommunicator

from notifications.consumers import CashierConsumer, KitchenConsumer
from notifications.services import BROADCAST_GROUP, CASHIER_GROUP, KITCHEN_GROUP
from orders.services import OrderService
from tables.services import TableService


async def connect(consumer, path):
    communicator = WebsocketCommunicator(consumer.as_asgi(), path)
    connected, _ = await communicator.connect()
    assert connected
    snapshot = await communicator.receive_json_from()
    return communicator, snapshot


@pytest.mark.django_db(transaction=True)
@pytest.mark.asyncio
class TestCashierConsumer:
    async def test_snapshot_on_connect(self):
        await database_sync_to_async(TableService.create_table)("T-01")

        communicator, snapshot = await connect(CashierConsumer, "/ws/cashier/")

        assert snapshot["type"] == "snapshot"
        assert [t["table_number"] for t in snapshot["data"]["tables"]] == ["T-01"]
        assert snapshot["data"]["printer"]["status"] == "online"
        await communicator.disconnect()

    async def test_ping_pong(self):
        communicator, _ = await connect(CashierConsumer, "/ws/cashier/")

        await communicator.send_json_to({"type": "ping"})

        assert await communicator.receive_json_from() == {"type": "pong", "data": {}}
        await communicator.disconnect()

    async def test_snapshot_on_request(self):
        communicator, _ = await connect(CashierConsumer, "/ws/cashier/")
        await database_sync_to_async(TableService.create_table)("T-07")

        await communicator.send_json_to({"type": "snapshot"})

        response = await communicator.receive_json_from()
        assert response["type"] == "snapshot"
        assert response["data"]["tables"][0]["table_number"] == "T-07"
        await communicator.disconnect()

    async def test_invalid_message_ignored(self):
        communicator, _ = await connect(CashierConsumer, "/ws/cashier/")

        await communicator.send_to(text_data="not json")
        await communicator.send_json_to({"type": "dance"})

        assert await communicator.receive_nothing()
        await communicator.disconnect()

    async def test_relays_cashier_and_broadcast_events(self):
        communicator, _ = await connect(CashierConsumer, "/ws/cashier/")
        layer = get_channel_layer()

        await layer.group_send(
            CASHIER_GROUP,
            {"type": "domain_event", "event": "order:new", "data": {"id": "abc"}},
        )
        await layer.group_send(
            BROADCAST_GROUP,
            {"type": "domain_event", "event": "printer:update", "data": {"status": "queued"}},
        )

        assert await communicator.receive_json_from() == {
            "type": "order:new",
            "data": {"id": "abc"},
        }
        assert await communicator.receive_json_from() == {
            "type": "printer:update",
            "data": {"status": "queued"},
        }
        await communicator.disconnect()

    async def test_kitchen_events_not_sent_to_cashier(self):
        communicator, _ = await connect(CashierConsumer, "/ws/cashier/")

        await get_channel_layer().group_send(
            KITCHEN_GROUP, {"type": "domain_event", "event": "kot:update", "data": {}}
        )

        assert await communicator.receive_nothing()
        await communicator.disconnect()


def approve_new_order():
    table = TableService.create_table("T-03")
    service = OrderService()
    order = service.create_order(
        table=table.pk, items=[{"name": "Masala Chai", "quantity": 1, "unit_price": "60.00"}]
    )
    service.approve_order(order.pk)
    return order


@pytest.mark.django_db(transaction=True)
@pytest.mark.asyncio
class TestKitchenConsumer:
    async def test_snapshot_lists_approved_orders(self):
        order = await database_sync_to_async(approve_new_order)()

        communicator, snapshot = await connect(KitchenConsumer, "/ws/kitchen/")

        tickets = snapshot["data"]["orders"]
        assert [t["order"]["id"] for t in tickets] == [str(order.pk)]
        # Built without a printer, so nothing was queued for this order.
        assert tickets[0]["print_status"] is None
        await communicator.disconnect()

    async def test_relays_kot_updates(self):
        communicator, _ = await connect(KitchenConsumer, "/ws/kitchen/")

        await get_channel_layer().group_send(
            KITCHEN_GROUP,
            {"type": "domain_event", "event": "kot:update", "data": {"print_status": None}},
        )

        response = await communicator.receive_json_from()
        assert response["type"] == "kot:update"
        await communicator.disconnect()
