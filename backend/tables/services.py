import logging
import uuid

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import transaction
from django.utils import timezone

from cafeflow.exceptions import NotFound
from .models import Table

logger = logging.getLogger(__name__)


class TableService:
    """
    Keeps table occupancy consistent with the orders placed at each table.

    The occupancy helpers are static so the order state machine can call them
    inside its own transaction. ``release_table`` also publishes the orders it
    force-serves, so it needs the event bus.
    """

    # Lower value wins when picking the order shown for an occupied table.
    ORDER_PRIORITY = {"pending": 0, "approved": 1, "served": 2}

    def __init__(self, events=None):
        self.events = events

    @staticmethod
    def get_table(table_id) -> Table:
        try:
            return Table.objects.get(pk=table_id)
        except (Table.DoesNotExist, DjangoValidationError, ValueError):
            raise NotFound(f"Table {table_id} not found")

    @staticmethod
    def resolve(reference) -> Table:
        """
        Finds a table by primary key, QR slug or printed table number.
        """
        if isinstance(reference, Table):
            return reference
        if reference in (None, ""):
            raise NotFound("Table reference is required")

        try:
            table_pk = uuid.UUID(str(reference))
        except ValueError:
            table_pk = None

        if table_pk is not None:
            table = Table.objects.filter(pk=table_pk).first()
            if table:
                return table

        table = (
            Table.objects.filter(qr_slug=str(reference)).first()
            or Table.objects.filter(table_number=str(reference)).first()
        )
        if table is None:
            raise NotFound(f"Table {reference} not found")
        return table

    @staticmethod
    def create_table(number: str, qr_slug: str = None) -> Table:
        table = Table.objects.create(table_number=number, qr_slug=qr_slug or number)
        logger.info(f"Created table {table.table_number} (slug={table.qr_slug})")
        return table

    @staticmethod
    def occupy(table: Table) -> Table:
        now = timezone.now()
        Table.objects.filter(pk=table.pk).update(
            status=Table.TableStatus.OCCUPIED, updated_at=now
        )
        table.status = Table.TableStatus.OCCUPIED
        table.updated_at = now
        return table

    @staticmethod
    def mark_idle(table: Table) -> Table:
        now = timezone.now()
        Table.objects.filter(pk=table.pk).update(
            status=Table.TableStatus.IDLE, updated_at=now
        )
        table.status = Table.TableStatus.IDLE
        table.updated_at = now
        return table

    @staticmethod
    def mark_idle_if_unused(table: Table) -> bool:
        """
        Idles the table unless another pending or approved order still sits
        on it. Returns True when the table was idled.
        """
        from orders.models import Order

        # Row lock serializes against create_order occupying the same table.
        Table.objects.select_for_update().filter(pk=table.pk).exists()
        if Order.objects.filter(table=table, status__in=Order.ACTIVE_STATUSES).exists():
            return False
        TableService.mark_idle(table)
        return True

    @classmethod
    def list_tables_with_status(cls):
        """
        Returns every table with its status and, for occupied tables only, the
        order the cashier should look at: pending first, then approved, then
        served, newest first within each status.
        """
        from orders.models import Order
        from orders.serializers import OrderSerializer

        tables = list(Table.objects.all())
        occupied_ids = [t.pk for t in tables if t.is_occupied]

        chosen = {}
        if occupied_ids:
            candidates = (
                Order.objects.filter(
                    table_id__in=occupied_ids,
                    status__in=list(cls.ORDER_PRIORITY.keys()),
                )
                .prefetch_related("items", "timeline")
                .order_by("-created_at")
            )
            for order in candidates:
                current = chosen.get(order.table_id)
                # Candidates arrive newest first, so only a strictly better
                # status may replace the current pick.
                if current is None or (
                    cls.ORDER_PRIORITY[order.status] < cls.ORDER_PRIORITY[current.status]
                ):
                    chosen[order.table_id] = order

        result = []
        for table in tables:
            order = chosen.get(table.pk) if table.is_occupied else None
            result.append(
                {
                    "id": str(table.pk),
                    "table_number": table.table_number,
                    "qr_slug": table.qr_slug,
                    "status": table.status,
                    "order": OrderSerializer(order).data if order else None,
                }
            )
        return result

    def release_table(self, table_id, actor: str = "Cashier") -> Table:
        """
        Frees a table: sets it idle and serves every pending or approved order
        still attached to it.
        """
        from orders.models import Order

        with transaction.atomic():
            try:
                table = Table.objects.select_for_update().get(pk=table_id)
            except (Table.DoesNotExist, DjangoValidationError, ValueError):
                raise NotFound(f"Table {table_id} not found")

            self.mark_idle(table)

            now = timezone.now()
            released = list(
                Order.objects.select_for_update().filter(
                    table=table,
                    status__in=[Order.OrderStatus.PENDING, Order.OrderStatus.APPROVED],
                )
            )
            for order in released:
                Order.objects.filter(pk=order.pk).update(
                    status=Order.OrderStatus.SERVED, served_at=now, updated_at=now
                )
                order.add_timeline("Table Released", actor, "Table reset by cashier")
                if self.events is not None:
                    order.refresh_from_db()
                    self.events.order_updated(order)

            logger.info(
                f"Released table {table.table_number}: {len(released)} order(s) marked served"
            )

        return table
