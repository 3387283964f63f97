"""
Unit tests for the HTTP routes.

Tests cover:
- Payment webhook: test pings, malformed bodies, completed payments, store failures
- Proof upload and review forms
- Error taxonomy to status code mapping
- Basic-auth admin panel API
"""

from collections.abc import AsyncGenerator
from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest
import pytest_asyncio

pytest.importorskip("fastapi")
pytest.importorskip("httpx")

import httpx  # noqa: E402

from fulfillment.aggregates.order import OrderStatus  # noqa: E402
from fulfillment.exceptions import (  # noqa: E402
    AlreadyReviewedError,
    FulfillmentError,
    InvalidRatingError,
    OrderNotFoundError,
    UnauthorizedError,
    UpstreamError,
)
from fulfillment.testing import FulfillmentTestHarness  # noqa: E402
from fulfillment.web import create_app, status_for  # noqa: E402

PANEL_AUTH = ("admin", "secret")
PNG = b"\x89PNG\r\n\x1a\nfake"


@pytest_asyncio.fixture
async def web_harness(tmp_path: Path) -> AsyncGenerator[FulfillmentTestHarness, None]:
    harness = FulfillmentTestHarness(uploads_dir=str(tmp_path / "uploads"))
    await harness.start()
    yield harness
    await harness.stop()


@pytest_asyncio.fixture
async def client(web_harness: FulfillmentTestHarness) -> AsyncGenerator[httpx.AsyncClient, None]:
    transport = httpx.ASGITransport(app=create_app(web_harness.app))
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as http:
        yield http


# =============================================================================
# Status mapping
# =============================================================================


class TestStatusFor:
    @pytest.mark.parametrize(
        ("error", "status"),
        [
            (InvalidRatingError(9), 400),
            (OrderNotFoundError(1), 404),
            (AlreadyReviewedError(1), 409),
            (UnauthorizedError("x", "do things"), 403),
            (UpstreamError("send_message"), 502),
            (FulfillmentError("boom"), 500),
        ],
    )
    def test_mapping(self, error: FulfillmentError, status: int) -> None:
        assert status_for(error) == status


# =============================================================================
# Public routes
# =============================================================================


class TestWebhook:
    @pytest.mark.asyncio
    async def test_ping(self, client: httpx.AsyncClient) -> None:
        response = await client.get("/ping")

        assert response.json()["status"] == "ok"

    @pytest.mark.asyncio
    async def test_completed_payment_marks_order_paid(
        self, client: httpx.AsyncClient, web_harness: FulfillmentTestHarness
    ) -> None:
        ticket = await web_harness.pending_order()
        order_id = ticket.order.order_id

        response = await client.post(
            "/efi-webhook",
            json={"pix": [{"txid": ticket.order.txid, "status": "CONCLUIDA"}]},
        )

        assert response.status_code == 200
        assert response.text == "OK"
        assert (await web_harness.engine.get_order(order_id)).status == OrderStatus.PAID

    @pytest.mark.asyncio
    async def test_store_failure_still_acknowledged(
        self, client: httpx.AsyncClient, web_harness: FulfillmentTestHarness
    ) -> None:
        ticket = await web_harness.pending_order()
        locked = AsyncMock(side_effect=RuntimeError("database is locked"))

        with patch.object(web_harness.app.event_store, "read_stream", locked):
            response = await client.post(
                "/efi-webhook",
                json={"pix": [{"txid": ticket.order.txid, "status": "CONCLUIDA"}]},
            )

        assert response.status_code == 200
        assert response.text == "OK"
        assert (await web_harness.engine.get_order(ticket.order.order_id)).status == OrderStatus.PENDING_PAYMENT

    @pytest.mark.asyncio
    async def test_test_notification(self, client: httpx.AsyncClient) -> None:
        response = await client.post("/efi-webhook", json={"evento": "teste_webhook"})

        assert response.text == "OK"

    @pytest.mark.asyncio
    async def test_malformed_body_is_acknowledged(self, client: httpx.AsyncClient) -> None:
        response = await client.post(
            "/efi-webhook", content=b"not json", headers={"content-type": "application/json"}
        )

        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_storefront(self, client: httpx.AsyncClient) -> None:
        ids = [item["id"] for item in (await client.get("/loja")).json()]

        assert "MANGO" in ids


class TestProofUpload:
    @pytest.mark.asyncio
    async def test_upload_page(self, client: httpx.AsyncClient, web_harness: FulfillmentTestHarness) -> None:
        ticket = await web_harness.paid_order()

        response = await client.get(f"/upload-proof/{ticket.order.order_id}")

        assert response.json()["item_name"] == "MANGO"

    @pytest.mark.asyncio
    async def test_unknown_order(self, client: httpx.AsyncClient) -> None:
        response = await client.get("/upload-proof/999")

        assert response.status_code == 404
        assert response.json()["error"] == "OrderNotFoundError"

    @pytest.mark.asyncio
    async def test_submit_proof_stores_photo(
        self, client: httpx.AsyncClient, web_harness: FulfillmentTestHarness
    ) -> None:
        ticket = await web_harness.paid_order()
        order_id = ticket.order.order_id

        response = await client.post(
            f"/submit-proof/{order_id}",
            files={"photo": ("proof.PNG", PNG, "image/png")},
            data={"note": "at the door"},
        )

        body = response.json()
        assert response.status_code == 200
        assert body["photo_url"].endswith(".png")
        stored = list(Path(web_harness.settings.uploads_dir).iterdir())
        assert [p.read_bytes() for p in stored] == [PNG]
        order = await web_harness.engine.get_order(order_id)
        assert order.status == OrderStatus.DELIVERED_PENDING_REVIEW
        assert order.note == "at the door"

    @pytest.mark.asyncio
    async def test_second_proof_conflicts(
        self, client: httpx.AsyncClient, web_harness: FulfillmentTestHarness
    ) -> None:
        ticket = await web_harness.delivered_order()

        page = await client.get(f"/upload-proof/{ticket.order.order_id}")
        response = await client.post(
            f"/submit-proof/{ticket.order.order_id}",
            files={"photo": ("proof.png", PNG, "image/png")},
        )

        assert page.status_code == 409
        assert response.status_code == 409

    @pytest.mark.asyncio
    async def test_photo_required(self, client: httpx.AsyncClient, web_harness: FulfillmentTestHarness) -> None:
        ticket = await web_harness.paid_order()

        response = await client.post(f"/submit-proof/{ticket.order.order_id}", data={"note": "x"})

        assert response.status_code == 400
        assert response.json()["error"] == "MissingProofError"


class TestReviewForm:
    @pytest.mark.asyncio
    async def test_review_closes_order(self, client: httpx.AsyncClient, web_harness: FulfillmentTestHarness) -> None:
        ticket = await web_harness.delivered_order()
        order_id = ticket.order.order_id

        page = await client.get(f"/avaliar/{order_id}")
        response = await client.post(f"/submit-review/{order_id}", data={"rating": "5", "text": "Great"})

        assert page.json()["can_review"]
        assert response.json() == {"status": "success", "order_id": order_id, "rating": 5}
        assert (await web_harness.engine.get_order(order_id)).status == OrderStatus.CLOSED

    @pytest.mark.asyncio
    async def test_second_review_conflicts(
        self, client: httpx.AsyncClient, web_harness: FulfillmentTestHarness
    ) -> None:
        ticket = await web_harness.delivered_order()
        order_id = ticket.order.order_id
        await client.post(f"/submit-review/{order_id}", data={"rating": "5"})

        page = await client.get(f"/avaliar/{order_id}")
        response = await client.post(f"/submit-review/{order_id}", data={"rating": "4"})

        assert page.status_code == 409
        assert response.status_code == 409

    @pytest.mark.asyncio
    async def test_invalid_rating(self, client: httpx.AsyncClient, web_harness: FulfillmentTestHarness) -> None:
        ticket = await web_harness.delivered_order()

        response = await client.post(f"/submit-review/{ticket.order.order_id}", data={"rating": "7"})

        assert response.status_code == 400


# =============================================================================
# Admin panel
# =============================================================================


class TestAdminPanel:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("auth", [None, ("admin", "wrong"), ("root", "secret")])
    async def test_requires_credentials(self, client: httpx.AsyncClient, auth: tuple[str, str] | None) -> None:
        response = await client.get("/admin/stock", auth=auth)

        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_stock_admin(self, client: httpx.AsyncClient) -> None:
        added = await client.post(
            "/admin/add-item",
            json={"id": "golden apple", "name": "Golden Apple", "price": "1.25", "quantity": 3},
            auth=PANEL_AUTH,
        )
        updated = await client.post(
            "/admin/update-stock", json={"GOLDEN_APPLE_quantity": "9"}, auth=PANEL_AUTH
        )
        deleted = await client.post("/admin/delete-item", json={"id": "GOLDEN_APPLE"}, auth=PANEL_AUTH)

        assert added.json()["item"]["id"] == "GOLDEN_APPLE"
        assert updated.json()["updated"] == ["GOLDEN_APPLE"]
        assert deleted.json() == {"status": "success"}

    @pytest.mark.asyncio
    async def test_delete_item_in_use(self, client: httpx.AsyncClient, web_harness: FulfillmentTestHarness) -> None:
        await web_harness.pending_order("MANGO")

        response = await client.post("/admin/delete-item", json={"id": "MANGO"}, auth=PANEL_AUTH)

        assert response.status_code == 409

    @pytest.mark.asyncio
    async def test_dashboard_and_deliveries(
        self, client: httpx.AsyncClient, web_harness: FulfillmentTestHarness
    ) -> None:
        ticket = await web_harness.delivered_order()
        await web_harness.engine.submit_review(ticket.order.order_id, 5, "")
        await web_harness.pending_order()

        dashboard = (await client.get("/admin/dashboard", auth=PANEL_AUTH)).json()
        deliveries = (await client.get("/admin/deliveries", auth=PANEL_AUTH)).json()

        assert dashboard["total_sales"] == 1
        assert sorted(d["status_code"] for d in deliveries) == [102, 200]

    @pytest.mark.asyncio
    async def test_configuration(self, client: httpx.AsyncClient, web_harness: FulfillmentTestHarness) -> None:
        saved = await client.post("/admin/config", json={"reviews_channel_id": "reviews"}, auth=PANEL_AUTH)
        current = await client.get("/admin/config", auth=PANEL_AUTH)

        assert saved.json()["saved"]
        assert current.json()["reviews_channel_id"] == "reviews"
        assert not current.json()["managed_externally"]
        assert web_harness.engine.configuration.reviews_channel_id == "reviews"
