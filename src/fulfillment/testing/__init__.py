"""
Test utilities for fulfillment.

Components:
    FakeChatPlatform: records channels, messages and role grants in memory
    FakePaymentProvider: deterministic charges and QR codes
    FulfillmentTestHarness: in-memory FulfillmentApp wired to the fakes

Note:
    This module is intended for test code only. It should not be imported
    in production code paths.
"""

from fulfillment.testing.fakes import (
    CollaboratorFailure,
    FakeChannel,
    FakeChatPlatform,
    FakePaymentProvider,
)
from fulfillment.testing.harness import (
    BASE_URL,
    OWNER_ID,
    FulfillmentTestHarness,
    make_settings,
)

__all__ = [
    "BASE_URL",
    "CollaboratorFailure",
    "FakeChannel",
    "FakeChatPlatform",
    "FakePaymentProvider",
    "FulfillmentTestHarness",
    "OWNER_ID",
    "make_settings",
]
