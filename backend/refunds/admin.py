from django.contrib import admin

from .models import Refund


@admin.register(Refund)
class RefundAdmin(admin.ModelAdmin):
    list_display = ["order", "amount", "status", "requested_by", "approved_by", "created_at"]
    list_filter = ["status"]
    search_fields = ["order__order_number", "reason", "requested_by"]
    readonly_fields = [
        "id",
        "status",
        "approved_by",
        "approved_at",
        "rejected_by",
        "rejected_at",
        "refunded_at",
        "created_at",
        "updated_at",
    ]
