from django.contrib import admin

from .models import Order, OrderItem, OrderTimelineEntry


class OrderItemInline(admin.TabularInline):
    model = OrderItem
    extra = 0
    readonly_fields = ["position", "name", "quantity", "unit_price", "modifiers"]
    can_delete = False


class OrderTimelineInline(admin.TabularInline):
    model = OrderTimelineEntry
    extra = 0
    readonly_fields = ["action", "actor", "note", "timestamp"]
    can_delete = False

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = [
        "order_number",
        "table_number",
        "status",
        "payment_status",
        "payment_method",
        "total",
        "is_cashier_order",
        "created_at",
    ]
    list_filter = ["status", "payment_status", "is_cashier_order"]
    search_fields = ["order_number", "table_number", "customer_phone", "customer_name"]
    # Status fields are owned by the services; the admin is read-only for them.
    readonly_fields = [
        "id",
        "order_number",
        "status",
        "payment_status",
        "payment_confirmed_at",
        "payment_confirmed_by",
        "approved_at",
        "served_at",
        "created_at",
        "updated_at",
    ]
    inlines = [OrderItemInline, OrderTimelineInline]
