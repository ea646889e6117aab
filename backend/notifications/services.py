import logging
from decimal import Decimal
from uuid import UUID

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer
from django.db import transaction

logger = logging.getLogger(__name__)

CASHIER_GROUP = "cashier"
KITCHEN_GROUP = "kitchen"
# Every connected viewer joins this group.
BROADCAST_GROUP = "broadcast"


def convert_payload_to_str(data):
    """
    Recursively converts UUID and Decimal objects in a data structure to strings.
    This prepares the payload for serialization by the channel layer.
    """
    if isinstance(data, dict):
        return {k: convert_payload_to_str(v) for k, v in data.items()}
    elif isinstance(data, (list, tuple)):
        return [convert_payload_to_str(elem) for elem in data]
    elif isinstance(data, UUID):
        return str(data)
    elif isinstance(data, Decimal):
        return str(data)
    return data


class EventBus:
    """
    Publishes domain events to the websocket viewers.

    Events are sent only after the surrounding transaction commits, so
    viewers never see a state that was rolled back. Publishing is
    fire-and-forget: channel layer errors are logged and never reach the
    caller, and nothing is kept for late subscribers.
    """

    def __init__(self, channel_layer=None):
        self._channel_layer = channel_layer

    @property
    def channel_layer(self):
        return self._channel_layer or get_channel_layer()

    def order_created(self, order):
        from orders.serializers import OrderSerializer

        self.publish(CASHIER_GROUP, "order:new", OrderSerializer(order).data)

    def order_updated(self, order):
        from orders.serializers import OrderSerializer

        self.publish(CASHIER_GROUP, "order:update", OrderSerializer(order).data)

    def kot_updated(self, order, print_status):
        from orders.serializers import OrderSerializer

        self.publish(
            KITCHEN_GROUP,
            "kot:update",
            {"order": OrderSerializer(order).data, "print_status": print_status},
        )

    def printer_updated(self, order_id, status, health):
        self.publish(
            BROADCAST_GROUP,
            "printer:update",
            {"order_id": order_id, "status": status, "health": health},
        )

    def publish(self, group, event, data):
        # Serialize now so the payload reflects the state being committed.
        payload = convert_payload_to_str(data)
        transaction.on_commit(lambda: self.send(group, event, payload))

    def send(self, group, event, payload):
        channel_layer = self.channel_layer
        if channel_layer is None:
            logger.warning(f"No channel layer configured; dropping {event} for {group}")
            return
        try:
            async_to_sync(channel_layer.group_send)(
                group, {"type": "domain_event", "event": event, "data": payload}
            )
            logger.debug(f"Published {event} to {group}")
        except Exception as e:
            logger.error(f"Failed to publish {event} to {group}: {e}")
