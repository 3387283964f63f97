"""
Standard span attributes for fulfillment components.

Span names follow ``fulfillment.<component>.<operation>``; attribute keys
are defined here so every component labels spans the same way.
"""

# =============================================================================
# Aggregate and event attributes
# =============================================================================

ATTR_AGGREGATE_ID = "fulfillment.aggregate.id"
"""Integer id of the aggregate (order id)."""

ATTR_AGGREGATE_TYPE = "fulfillment.aggregate.type"

ATTR_EVENT_TYPE = "fulfillment.event.type"

ATTR_EVENT_COUNT = "fulfillment.event.count"
"""Number of events in an operation."""

ATTR_VERSION = "fulfillment.version"

ATTR_EXPECTED_VERSION = "fulfillment.expected_version"
"""Expected stream version for optimistic concurrency."""

# =============================================================================
# Domain attributes
# =============================================================================

ATTR_ORDER_ID = "fulfillment.order.id"

ATTR_ORDER_STATUS = "fulfillment.order.status"

ATTR_ITEM_ID = "fulfillment.item.id"

ATTR_COUPON_CODE = "fulfillment.coupon.code"

ATTR_GIFT_CODE = "fulfillment.gift.code"

ATTR_CHANNEL_ID = "fulfillment.channel.id"

ATTR_ACTOR_ID = "fulfillment.actor.id"
"""User who initiated the action."""

ATTR_TXID = "fulfillment.payment.txid"

ATTR_TIMER_NAME = "fulfillment.timer.name"

# =============================================================================
# Record store attributes
# =============================================================================

ATTR_RECORD_TYPE = "fulfillment.record.type"

ATTR_RECORD_ID = "fulfillment.record.id"

ATTR_QUERY_LIMIT = "fulfillment.query.limit"

# =============================================================================
# Database attributes (OpenTelemetry semantic conventions)
# =============================================================================

ATTR_DB_SYSTEM = "db.system"
"""Database system, e.g. 'sqlite'."""

ATTR_DB_NAME = "db.name"

ATTR_DB_OPERATION = "db.operation"


__all__ = [
    "ATTR_ACTOR_ID",
    "ATTR_AGGREGATE_ID",
    "ATTR_AGGREGATE_TYPE",
    "ATTR_CHANNEL_ID",
    "ATTR_COUPON_CODE",
    "ATTR_DB_NAME",
    "ATTR_DB_OPERATION",
    "ATTR_DB_SYSTEM",
    "ATTR_EVENT_COUNT",
    "ATTR_EVENT_TYPE",
    "ATTR_EXPECTED_VERSION",
    "ATTR_GIFT_CODE",
    "ATTR_ITEM_ID",
    "ATTR_ORDER_ID",
    "ATTR_ORDER_STATUS",
    "ATTR_QUERY_LIMIT",
    "ATTR_RECORD_ID",
    "ATTR_RECORD_TYPE",
    "ATTR_TIMER_NAME",
    "ATTR_TXID",
    "ATTR_VERSION",
]
