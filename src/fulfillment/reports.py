"""
Sales reports over closed orders.
"""

import logging
from collections import Counter, defaultdict
from dataclasses import dataclass, field
from datetime import date
from decimal import ROUND_HALF_UP, Decimal

from fulfillment.aggregates.order import OrderStatus
from fulfillment.coupons import CENTS
from fulfillment.observability import Tracer, create_tracer
from fulfillment.records.models import DeliveryRecord
from fulfillment.records.query import Filter, Query
from fulfillment.records.repository import RecordRepository

logger = logging.getLogger(__name__)

TOP_PRODUCTS = 5


@dataclass(frozen=True)
class DailyRevenue:
    day: date
    revenue: Decimal


@dataclass(frozen=True)
class ProductSales:
    item_name: str
    quantity: int


@dataclass(frozen=True)
class DashboardStats:
    """
    Aggregate figures for the admin dashboard.

    Revenue uses the unit price captured when each order was created, so
    later price changes and deleted items do not rewrite history.
    """

    total_revenue: Decimal = Decimal("0.00")
    total_sales: int = 0
    items_sold: int = 0
    average_ticket: Decimal = Decimal("0.00")
    revenue_by_date: list[DailyRevenue] = field(default_factory=list)
    top_products: list[ProductSales] = field(default_factory=list)


class SalesReporter:
    def __init__(
        self,
        deliveries: RecordRepository[DeliveryRecord],
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._enable_tracing = self._tracer.enabled
        self._deliveries = deliveries

    async def dashboard_stats(self) -> DashboardStats:
        with self._tracer.span("fulfillment.reports.dashboard_stats", {}):
            closed = await self._deliveries.find(
                Query(filters=[Filter.eq("status", OrderStatus.CLOSED.value)])
            )
            return compute_stats(closed)


def compute_stats(records: list[DeliveryRecord]) -> DashboardStats:
    """Fold delivery records into dashboard figures."""
    if not records:
        return DashboardStats()

    total = Decimal("0")
    items = 0
    by_day: defaultdict[date, Decimal] = defaultdict(Decimal)
    by_product: Counter[str] = Counter()

    for record in records:
        value = record.total
        total += value
        items += record.quantity
        by_day[record.created_at.date()] += value
        by_product[record.item_name] += record.quantity

    average = total / len(records)
    logger.debug("Computed dashboard over %d closed orders", len(records))

    return DashboardStats(
        total_revenue=total.quantize(CENTS, rounding=ROUND_HALF_UP),
        total_sales=len(records),
        items_sold=items,
        average_ticket=average.quantize(CENTS, rounding=ROUND_HALF_UP),
        revenue_by_date=[
            DailyRevenue(day=day, revenue=revenue.quantize(CENTS, rounding=ROUND_HALF_UP))
            for day, revenue in sorted(by_day.items())
        ],
        top_products=[
            ProductSales(item_name=name, quantity=quantity)
            for name, quantity in sorted(by_product.items(), key=lambda kv: (-kv[1], kv[0]))[
                :TOP_PRODUCTS
            ]
        ],
    )


__all__ = [
    "DailyRevenue",
    "DashboardStats",
    "ProductSales",
    "SalesReporter",
    "TOP_PRODUCTS",
    "compute_stats",
]
