import django.db.models.deletion
import django.utils.timezone
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("orders", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="PrinterState",
            fields=[
                (
                    "id",
                    models.PositiveSmallIntegerField(default=1, primary_key=True, serialize=False),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("online", "Online"),
                            ("degraded", "Degraded"),
                            ("offline", "Offline"),
                        ],
                        default="online",
                        max_length=20,
                    ),
                ),
                ("last_success_at", models.DateTimeField(blank=True, null=True)),
                ("last_error", models.CharField(blank=True, max_length=255)),
                ("is_processing", models.BooleanField(default=False)),
                ("claimed_at", models.DateTimeField(blank=True, null=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "verbose_name": "Printer State",
                "verbose_name_plural": "Printer State",
            },
        ),
        migrations.CreateModel(
            name="PrintJob",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True, primary_key=True, serialize=False, verbose_name="ID"
                    ),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("queued", "Queued"),
                            ("printing", "Printing"),
                            ("offline", "Printer Offline"),
                            ("failed", "Failed"),
                            ("success", "Printed"),
                        ],
                        default="queued",
                        max_length=20,
                    ),
                ),
                ("message", models.CharField(blank=True, max_length=255)),
                (
                    "attempt",
                    models.PositiveIntegerField(
                        default=0, help_text="Zero-based index of the current print attempt"
                    ),
                ),
                (
                    "generation",
                    models.PositiveIntegerField(
                        default=1, help_text="Bumped whenever the job is re-queued"
                    ),
                ),
                ("queued_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("last_attempt_at", models.DateTimeField(blank=True, null=True)),
                ("last_success_at", models.DateTimeField(blank=True, null=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "order",
                    models.OneToOneField(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="print_job",
                        to="orders.order",
                    ),
                ),
            ],
            options={
                "ordering": ["queued_at", "id"],
                "indexes": [
                    models.Index(
                        fields=["status", "queued_at"], name="printjob_status_queued_idx"
                    )
                ],
            },
        ),
    ]
