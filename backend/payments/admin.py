from django.contrib import admin

from .models import Payment


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    list_display = [
        "order",
        "amount",
        "payment_type",
        "payment_method",
        "is_manual_flag",
        "confirmed_by",
        "created_at",
    ]
    list_filter = ["payment_type", "is_manual_flag", "card_machine_used"]
    search_fields = ["order__order_number", "payment_method", "confirmed_by"]
    readonly_fields = [f.name for f in Payment._meta.fields]

    def has_add_permission(self, request):
        return False
