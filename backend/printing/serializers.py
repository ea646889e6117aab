from rest_framework import serializers

from .models import PrintJob


class PrintJobSerializer(serializers.ModelSerializer):
    order_id = serializers.UUIDField(read_only=True)

    class Meta:
        model = PrintJob
        fields = [
            "order_id",
            "status",
            "message",
            "attempt",
            "queued_at",
            "last_attempt_at",
            "last_success_at",
            "updated_at",
        ]
        read_only_fields = fields
