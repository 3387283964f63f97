"""
HTTP surface.

Thin FastAPI glue over FulfillmentApp: the payment webhook, the proof and
review forms, the public stock listing and the basic-auth admin panel API.
Install with the ``web`` extra.

Taxonomy errors map to status codes: validation 400, not found 404,
conflict 409, authorization 403, upstream 502.
"""

from __future__ import annotations

import logging
import secrets
import uuid
from pathlib import Path
from typing import Any

from fastapi import APIRouter, Depends, FastAPI, File, Form, HTTPException, Request, UploadFile
from fastapi.responses import JSONResponse, PlainTextResponse
from fastapi.security import HTTPBasic, HTTPBasicCredentials
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel

from fulfillment.aggregates.order import OrderStatus
from fulfillment.app import FulfillmentApp
from fulfillment.exceptions import (
    AlreadyFinalizedError,
    AlreadyReviewedError,
    AuthorizationError,
    ConflictError,
    FulfillmentError,
    MissingProofError,
    NotFoundError,
    UpstreamError,
    ValidationError,
)
from fulfillment.records.models import Configuration

logger = logging.getLogger(__name__)

PANEL_REALM = "fulfillment-panel"

security = HTTPBasic(realm=PANEL_REALM)


def status_for(error: FulfillmentError) -> int:
    if isinstance(error, ValidationError):
        return 400
    if isinstance(error, NotFoundError):
        return 404
    if isinstance(error, ConflictError):
        return 409
    if isinstance(error, AuthorizationError):
        return 403
    if isinstance(error, UpstreamError):
        return 502
    return 500


class AddItemRequest(BaseModel):
    id: str
    name: str
    emoji: str = ""
    price: Any = 0
    quantity: Any = 0
    max: Any = None


class DeleteItemRequest(BaseModel):
    id: str


class ConfigurationRequest(BaseModel):
    main_channel_id: str | None = None
    delivery_channel_id: str | None = None
    reviews_channel_id: str | None = None
    client_role_id: str | None = None


def _require_panel(fulfillment: FulfillmentApp):
    settings = fulfillment.settings

    def check(credentials: HTTPBasicCredentials = Depends(security)) -> str:
        user = settings.panel_user or ""
        password = settings.panel_password or ""
        valid = (
            bool(user and password)
            and secrets.compare_digest(credentials.username.encode(), user.encode())
            and secrets.compare_digest(credentials.password.encode(), password.encode())
        )
        if not valid:
            raise HTTPException(
                status_code=401,
                detail="Invalid credentials",
                headers={"WWW-Authenticate": f'Basic realm="{PANEL_REALM}"'},
            )
        return credentials.username

    return check


def _public_router(fulfillment: FulfillmentApp) -> APIRouter:
    router = APIRouter()
    engine = fulfillment.engine
    uploads = Path(fulfillment.settings.uploads_dir)

    @router.get("/ping")
    async def ping() -> dict[str, str]:
        return {"status": "ok", "message": "Bot is alive."}

    @router.post("/efi-webhook")
    async def efi_webhook(request: Request) -> PlainTextResponse:
        try:
            payload = await request.json()
        except ValueError:
            logger.warning("Webhook body is not JSON; acknowledged and ignored")
            return PlainTextResponse("OK")
        if isinstance(payload, dict):
            await fulfillment.payments.handle_notification(payload)
        return PlainTextResponse("OK")

    @router.get("/loja")
    async def storefront() -> list[dict[str, Any]]:
        items = await fulfillment.inventory.list_items()
        return [item.model_dump(mode="json") for item in items]

    @router.get("/upload-proof/{order_id}")
    async def upload_proof_page(order_id: int) -> dict[str, Any]:
        order = await engine.get_order(order_id)
        if order.status.is_finalized:
            raise AlreadyFinalizedError(order_id, order.status.value)
        return {
            "order_id": order.order_id,
            "item_name": order.item_name,
            "quantity": order.quantity,
            "status": order.status.value,
            "submit_url": f"/submit-proof/{order_id}",
        }

    @router.post("/submit-proof/{order_id}")
    async def submit_proof(
        order_id: int,
        photo: UploadFile | None = File(default=None),
        note: str | None = Form(default=None),
    ) -> dict[str, Any]:
        if photo is None or not photo.filename:
            raise MissingProofError(order_id)

        suffix = Path(photo.filename).suffix.lower()
        filename = f"proof-{order_id}-{uuid.uuid4().hex}{suffix}"
        uploads.mkdir(parents=True, exist_ok=True)
        (uploads / filename).write_bytes(await photo.read())
        photo_url = fulfillment.settings.url_for(f"uploads/{filename}") or f"/uploads/{filename}"

        order = await engine.submit_proof(order_id, photo_url, note or None)
        return {"status": "success", "order_id": order.order_id, "photo_url": photo_url}

    @router.get("/avaliar/{order_id}")
    async def review_page(order_id: int) -> dict[str, Any]:
        order = await engine.get_order(order_id)
        if await fulfillment.reviews.exists(order_id):
            raise AlreadyReviewedError(order_id)
        return {
            "order_id": order.order_id,
            "item_name": order.item_name,
            "quantity": order.quantity,
            "can_review": order.status == OrderStatus.DELIVERED_PENDING_REVIEW,
            "submit_url": f"/submit-review/{order_id}",
        }

    @router.post("/submit-review/{order_id}")
    async def submit_review(
        order_id: int,
        rating: str = Form(...),
        text: str = Form(default=""),
    ) -> dict[str, Any]:
        review = await engine.submit_review(order_id, rating, text)
        return {"status": "success", "order_id": review.order_id, "rating": review.rating}

    return router


def _admin_router(fulfillment: FulfillmentApp) -> APIRouter:
    router = APIRouter(prefix="/admin", dependencies=[Depends(_require_panel(fulfillment))])

    @router.get("/dashboard")
    async def dashboard() -> Any:
        return await fulfillment.reports.dashboard_stats()

    @router.get("/stock")
    async def get_stock() -> list[dict[str, Any]]:
        items = await fulfillment.inventory.list_items()
        return [item.model_dump(mode="json") for item in items]

    @router.post("/add-item")
    async def add_item(body: AddItemRequest) -> dict[str, Any]:
        item = await fulfillment.inventory.add_item(
            body.id,
            body.name,
            emoji=body.emoji,
            price=body.price,
            quantity=body.quantity,
            max_quantity=body.max,
        )
        return {"status": "success", "item": item.model_dump(mode="json")}

    @router.post("/delete-item")
    async def delete_item(body: DeleteItemRequest) -> dict[str, str]:
        await fulfillment.inventory.delete_item(body.id)
        return {"status": "success"}

    @router.post("/update-stock")
    async def update_stock(changes: dict[str, Any]) -> dict[str, Any]:
        updated = await fulfillment.inventory.update_stock(changes)
        return {"status": "success", "updated": [item.id for item in updated]}

    @router.get("/deliveries")
    async def deliveries() -> list[dict[str, Any]]:
        records = await fulfillment.deliveries.find()
        records.sort(key=lambda r: r.created_at, reverse=True)
        return [record.model_dump(mode="json") for record in records]

    @router.get("/config")
    async def get_config() -> dict[str, Any]:
        config = fulfillment.configuration.current
        return {
            "managed_externally": fulfillment.configuration.managed_externally,
            **config.model_dump(mode="json"),
        }

    @router.post("/config")
    async def save_config(body: ConfigurationRequest) -> dict[str, Any]:
        config = Configuration(id=1, **body.model_dump())
        saved = await fulfillment.save_configuration(config)
        return {"status": "success" if saved else "skipped", "saved": saved}

    return router


def create_app(fulfillment: FulfillmentApp) -> FastAPI:
    """Build the FastAPI application for an assembled FulfillmentApp."""
    app = FastAPI(title="Fulfillment")

    @app.exception_handler(FulfillmentError)
    async def fulfillment_error_handler(request: Request, exc: FulfillmentError) -> JSONResponse:
        status = status_for(exc)
        if status >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc)
        return JSONResponse(
            status_code=status,
            content={"status": "error", "error": type(exc).__name__, "message": str(exc)},
        )

    app.include_router(_public_router(fulfillment))
    app.include_router(_admin_router(fulfillment))
    app.mount(
        "/uploads",
        StaticFiles(directory=fulfillment.settings.uploads_dir, check_dir=False),
        name="uploads",
    )
    return app


__all__ = ["create_app", "status_for"]
