import json
import logging

from channels.db import database_sync_to_async
from channels.generic.websocket import AsyncWebsocketConsumer
from django.apps import apps
from django.core.serializers.json import DjangoJSONEncoder

from .services import BROADCAST_GROUP, CASHIER_GROUP, KITCHEN_GROUP

logger = logging.getLogger(__name__)


class ViewerConsumer(AsyncWebsocketConsumer):
    """
    Base consumer for the cashier and kitchen screens.

    On connect the viewer joins its role group plus the broadcast group and
    receives a full ``snapshot`` so it never has to poll for the current
    state. After that it only receives pushed events.
    """

    group_name = None

    async def connect(self):
        self.groups_joined = [self.group_name, BROADCAST_GROUP]
        for group in self.groups_joined:
            await self.channel_layer.group_add(group, self.channel_name)
        await self.accept()

        try:
            snapshot = await self.build_snapshot()
        except Exception as e:
            logger.error(f"Failed to build {self.group_name} snapshot: {e}", exc_info=True)
            snapshot = {}
        await self.send_event("snapshot", snapshot)

        logger.info(f"{self.group_name} viewer connected: {self.channel_name}")

    async def disconnect(self, close_code):
        for group in getattr(self, "groups_joined", []):
            await self.channel_layer.group_discard(group, self.channel_name)
        logger.info(f"{self.group_name} viewer disconnected (code={close_code})")

    async def receive(self, text_data=None, bytes_data=None):
        try:
            data = json.loads(text_data or "{}")
        except json.JSONDecodeError:
            logger.warning(f"Invalid JSON received from {self.group_name} viewer")
            return

        message_type = data.get("type")
        if message_type == "ping":
            await self.send_event("pong", {})
        elif message_type == "snapshot":
            await self.send_event("snapshot", await self.build_snapshot())
        else:
            logger.warning(f"Unknown message type from {self.group_name} viewer: {message_type}")

    async def domain_event(self, event):
        """Relays an EventBus message to the socket."""
        await self.send_event(event["event"], event["data"])

    async def send_event(self, event_type, data):
        await self.send(
            text_data=json.dumps({"type": event_type, "data": data}, cls=DjangoJSONEncoder)
        )

    async def build_snapshot(self):
        return {}

    @staticmethod
    def printer_health():
        printer = apps.get_app_config("printing").printer
        return printer.health() if printer else None


class CashierConsumer(ViewerConsumer):
    group_name = CASHIER_GROUP

    @database_sync_to_async
    def build_snapshot(self):
        from tables.services import TableService

        return {
            "tables": TableService.list_tables_with_status(),
            "printer": self.printer_health(),
        }


class KitchenConsumer(ViewerConsumer):
    group_name = KITCHEN_GROUP

    @database_sync_to_async
    def build_snapshot(self):
        from orders.models import Order
        from orders.serializers import OrderSerializer
        from printing.serializers import PrintJobSerializer

        approved = (
            Order.objects.filter(status=Order.OrderStatus.APPROVED)
            .select_related("print_job")
            .prefetch_related("items", "timeline")
            .order_by("approved_at")
        )
        tickets = []
        for order in approved:
            job = getattr(order, "print_job", None)
            tickets.append(
                {
                    "order": OrderSerializer(order).data,
                    "print_status": PrintJobSerializer(job).data if job else None,
                }
            )
        return {"orders": tickets, "printer": self.printer_health()}
