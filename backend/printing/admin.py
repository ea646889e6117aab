from django.contrib import admin

from .models import PrintJob, PrinterState


@admin.register(PrintJob)
class PrintJobAdmin(admin.ModelAdmin):
    list_display = ["order", "status", "attempt", "message", "queued_at", "last_success_at"]
    list_filter = ["status"]
    search_fields = ["order__order_number"]
    readonly_fields = [
        "order",
        "status",
        "message",
        "attempt",
        "generation",
        "queued_at",
        "last_attempt_at",
        "last_success_at",
        "updated_at",
    ]


@admin.register(PrinterState)
class PrinterStateAdmin(admin.ModelAdmin):
    list_display = ["status", "is_processing", "last_success_at", "last_error", "updated_at"]
    readonly_fields = ["status", "last_success_at", "last_error", "claimed_at", "updated_at"]
