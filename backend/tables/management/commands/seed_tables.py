from django.core.management.base import BaseCommand

from tables.models import Table


class Command(BaseCommand):
    help = "Create the default café tables (T-01, T-02, ...) if they do not exist"

    def add_arguments(self, parser):
        parser.add_argument(
            "--count",
            type=int,
            default=4,
            help="Number of tables to create (default: 4)",
        )

    def handle(self, *args, **options):
        created_count = 0
        for index in range(1, options["count"] + 1):
            number = f"T-{index:02d}"
            _, created = Table.objects.get_or_create(
                table_number=number, defaults={"qr_slug": number}
            )
            if created:
                created_count += 1
                self.stdout.write(f"Created table {number}")

        self.stdout.write(
            self.style.SUCCESS(f"Seeded {created_count} new table(s)")
        )
