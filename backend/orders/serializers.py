from decimal import Decimal

from rest_framework import serializers

from .models import Order, OrderItem, OrderTimelineEntry


class OrderItemSerializer(serializers.ModelSerializer):
    """
    Validates submitted line items and renders them back out.

    Clients that send ``price`` instead of ``unit_price`` are accepted.
    """

    quantity = serializers.IntegerField(min_value=1)
    unit_price = serializers.DecimalField(
        max_digits=10, decimal_places=2, min_value=Decimal("0")
    )
    modifiers = serializers.ListField(
        child=serializers.CharField(max_length=100), required=False, default=list
    )
    line_total = serializers.DecimalField(max_digits=12, decimal_places=2, read_only=True)

    class Meta:
        model = OrderItem
        fields = ["id", "name", "quantity", "unit_price", "modifiers", "line_total"]
        read_only_fields = ["id"]

    def to_internal_value(self, data):
        if isinstance(data, dict) and "unit_price" not in data and "price" in data:
            data = {**data, "unit_price": data["price"]}
        return super().to_internal_value(data)


class TimelineEntrySerializer(serializers.ModelSerializer):
    class Meta:
        model = OrderTimelineEntry
        fields = ["action", "actor", "note", "timestamp"]


class OrderSerializer(serializers.ModelSerializer):
    """Full order snapshot used for socket payloads and table listings."""

    items = OrderItemSerializer(many=True, read_only=True)
    timeline = TimelineEntrySerializer(many=True, read_only=True)
    table_id = serializers.UUIDField(read_only=True)
    customer_id = serializers.UUIDField(read_only=True, allow_null=True)

    class Meta:
        model = Order
        fields = [
            "id",
            "order_number",
            "table_id",
            "table_number",
            "status",
            "payment_status",
            "payment_method",
            "is_cashier_order",
            "customer_id",
            "customer_name",
            "customer_phone",
            "customer_notes",
            "total",
            "items",
            "timeline",
            "payment_confirmed_at",
            "payment_confirmed_by",
            "approved_at",
            "served_at",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields
