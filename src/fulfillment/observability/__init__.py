"""
Tracing for fulfillment services.

OpenTelemetry is optional. Without it every tracer is a no-op, so services
construct one unconditionally with :func:`create_tracer`.
"""

from fulfillment.observability.attributes import (
    ATTR_ACTOR_ID,
    ATTR_AGGREGATE_ID,
    ATTR_AGGREGATE_TYPE,
    ATTR_CHANNEL_ID,
    ATTR_COUPON_CODE,
    ATTR_DB_NAME,
    ATTR_DB_OPERATION,
    ATTR_DB_SYSTEM,
    ATTR_EVENT_COUNT,
    ATTR_EVENT_TYPE,
    ATTR_EXPECTED_VERSION,
    ATTR_GIFT_CODE,
    ATTR_ITEM_ID,
    ATTR_ORDER_ID,
    ATTR_ORDER_STATUS,
    ATTR_QUERY_LIMIT,
    ATTR_RECORD_ID,
    ATTR_RECORD_TYPE,
    ATTR_TIMER_NAME,
    ATTR_TXID,
    ATTR_VERSION,
)
from fulfillment.observability.tracer import (
    OTEL_AVAILABLE,
    NullTracer,
    OpenTelemetryTracer,
    RecordedSpan,
    RecordingTracer,
    Tracer,
    create_tracer,
    should_trace,
)

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
    "OTEL_AVAILABLE",
    "NullTracer",
    "OpenTelemetryTracer",
    "RecordedSpan",
    "RecordingTracer",
    "Tracer",
    "create_tracer",
    "should_trace",
]
