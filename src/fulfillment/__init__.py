"""
fulfillment - Order fulfillment engine for a chat-platform store bot.

This library provides:
- Event-sourced orders with a guarded lifecycle state machine
- Inventory, coupon, gift code and review stores (in-memory and SQLite)
- Payment correlation for instant-payment webhook notifications
- Cancellable idle timers and per-order locks
- Typed interaction dispatch and an optional FastAPI surface
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("fulfillment")
except PackageNotFoundError:
    # Package not installed (running from source without install)
    __version__ = "0.0.0.dev0"

from fulfillment.aggregates.order import OrderAggregate, OrderState, OrderStatus
from fulfillment.aggregates.repository import OrderRepository
from fulfillment.app import FulfillmentApp
from fulfillment.collaborators import (
    ChatPlatform,
    ChatUser,
    Message,
    PaymentProvider,
)
from fulfillment.config import ConfigurationStore, Settings
from fulfillment.coupons import CouponLedger, PriceQuote
from fulfillment.dispatch import Interaction, InteractionDispatcher, Reply
from fulfillment.engine import DeliveryConfirmation, OrderLifecycleEngine, OrderTicket
from fulfillment.exceptions import (
    AlreadyFinalizedError,
    AlreadyReviewedError,
    AuthorizationError,
    ConflictError,
    CouponInvalidError,
    FulfillmentError,
    GiftInvalidError,
    InsufficientStockError,
    InvalidQuantityError,
    InvalidRatingError,
    InvalidTransitionError,
    NotFoundError,
    OrderNotFoundError,
    UnauthorizedError,
    UpstreamError,
    ValidationError,
)
from fulfillment.gifts import GiftCodeBook
from fulfillment.inventory import InventoryStore
from fulfillment.payments import PaymentCorrelationAdapter
from fulfillment.reports import DashboardStats, SalesReporter
from fulfillment.reviews import ReviewBook

__all__ = [
    "__version__",
    # App
    "FulfillmentApp",
    "Settings",
    "ConfigurationStore",
    # Orders
    "OrderAggregate",
    "OrderState",
    "OrderStatus",
    "OrderRepository",
    "OrderLifecycleEngine",
    "OrderTicket",
    "DeliveryConfirmation",
    # Services
    "CouponLedger",
    "PriceQuote",
    "GiftCodeBook",
    "InventoryStore",
    "PaymentCorrelationAdapter",
    "ReviewBook",
    "SalesReporter",
    "DashboardStats",
    # Dispatch
    "Interaction",
    "InteractionDispatcher",
    "Reply",
    # Collaborators
    "ChatPlatform",
    "ChatUser",
    "Message",
    "PaymentProvider",
    # Exceptions
    "FulfillmentError",
    "ValidationError",
    "NotFoundError",
    "ConflictError",
    "AuthorizationError",
    "UpstreamError",
    "InvalidQuantityError",
    "InsufficientStockError",
    "InvalidRatingError",
    "CouponInvalidError",
    "OrderNotFoundError",
    "AlreadyFinalizedError",
    "AlreadyReviewedError",
    "GiftInvalidError",
    "InvalidTransitionError",
    "UnauthorizedError",
]
