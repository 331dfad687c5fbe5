"""ASGI application for Cartwise."""
# mypy: ignore-errors

from __future__ import annotations

import logging
from time import perf_counter
from typing import Any, Dict, Optional, Union
from uuid import uuid4

from fastapi import Body, Depends, FastAPI, HTTPException, Query, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from pydantic import BaseModel, ConfigDict, Field

from cartwise import __version__, metrics
from cartwise.config import Settings, get_settings
from cartwise.errors import NotFoundError, OutcomeError, StateError, ValidationError
from cartwise.logging_utils import configure_logging as configure_app_logging, log_context
from cartwise.models.cart import Cart, CartItem
from cartwise.models.catalog import Category, Item
from cartwise.models.reports import (
    CartSummary,
    CategoryGroup,
    CompletionReport,
    PriceHistoryPoint,
    QuantityChange,
    StoreGroup,
    StoreOrder,
)
from cartwise.server import deps
from cartwise.server.workspace import Workspace

logger = logging.getLogger(__name__)


def _json_safe(value: Any) -> Any:
    """Convert non-serializable values into JSON-safe representations."""

    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    if isinstance(value, (list, tuple)):
        return [_json_safe(entry) for entry in value]
    if isinstance(value, dict):
        return {key: _json_safe(sub_value) for key, sub_value in value.items()}
    return repr(value)


def _state_error_payload(exc: StateError) -> Dict[str, Any]:
    return {
        "detail": str(exc),
        "cart_id": exc.cart_id,
        "status": getattr(exc.status, "value", exc.status),
        "operation": exc.operation,
    }


def _validation_error_payload(error: ValidationError) -> Dict[str, Any]:
    return {"code": error.code.value, "message": error.message, "field": error.field}


def _configure_logging(settings: Settings) -> None:
    configure_app_logging(settings.log_level, settings.log_format, [settings.api_token or ""])


def create_app() -> FastAPI:
    """Create and configure a FastAPI application instance."""

    settings = get_settings()
    _configure_logging(settings)

    application = FastAPI(title="Cartwise", version=__version__)
    logger.debug("Application created with log level %s", settings.log_level)

    if settings.log_requests:
        access_logger = logging.getLogger("cartwise.access")

        @application.middleware("http")
        async def log_request_response(request: Request, call_next):
            """Log request/response details without leaking sensitive data."""

            request_id = request.headers.get("X-Request-ID") or uuid4().hex
            request.state.request_id = request_id
            start = perf_counter()
            path = request.url.path
            method = request.method
            with log_context(request_id=request_id):
                try:
                    response: Response = await call_next(request)
                except Exception:
                    duration_ms = (perf_counter() - start) * 1000
                    access_logger.exception("HTTP %s %s status=500 duration_ms=%.2f", method, path, duration_ms)
                    metrics.REQUEST_COUNT.labels(method=method, path=path, status="500").inc()
                    metrics.REQUEST_LATENCY.labels(method=method, path=path).observe(duration_ms / 1000.0)
                    raise

                duration_ms = (perf_counter() - start) * 1000
                response.headers.setdefault("X-Request-ID", request_id)
                access_logger.info(
                    "HTTP %s %s status=%s duration_ms=%.2f",
                    method,
                    path,
                    response.status_code,
                    duration_ms,
                )
            metrics.REQUEST_COUNT.labels(
                method=method,
                path=path,
                status=str(response.status_code),
            ).inc()
            metrics.REQUEST_LATENCY.labels(method=method, path=path).observe(duration_ms / 1000.0)
            return response

    @application.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        logger.warning(
            "Validation error on %s %s: %s",
            request.method,
            request.url.path,
            exc.errors(),
        )
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={
                "code": "invalid_request",
                "message": "Request body or parameters failed validation",
                "detail": _json_safe(exc.errors()),
            },
        )

    @application.exception_handler(OutcomeError)
    async def outcome_error_handler(request: Request, exc: OutcomeError):
        failure = exc.failure
        if isinstance(failure, StateError):
            return JSONResponse(status_code=status.HTTP_409_CONFLICT, content=_state_error_payload(failure))
        logger.info("Rejected input on %s %s: %s", request.method, request.url.path, failure.message)
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content=_validation_error_payload(failure),
        )

    @application.exception_handler(StateError)
    async def state_error_handler(request: Request, exc: StateError):
        logger.info("State conflict on %s %s: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=status.HTTP_409_CONFLICT, content=_state_error_payload(exc))

    @application.exception_handler(NotFoundError)
    async def not_found_handler(request: Request, exc: NotFoundError):
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content={"detail": str(exc), "kind": exc.kind, "id": exc.identifier},
        )

    @application.get("/healthz", include_in_schema=False)
    def healthz() -> dict[str, str]:
        return {"status": "ok", "version": __version__}

    @application.get("/metrics", include_in_schema=False)
    def metrics_endpoint() -> Response:
        payload = generate_latest()
        return Response(content=payload, media_type=CONTENT_TYPE_LATEST)

    # Catalog -----------------------------------------------------------------

    @application.get("/items", response_model=list[Item], summary="List catalog items")
    def items_list(
        q: Optional[str] = Query(default=None, max_length=255),
        exact: bool = Query(default=False),
        include_deleted: bool = Query(default=False),
        workspace: Workspace = Depends(deps.get_workspace),
    ) -> list[Item]:
        catalog = workspace.controller().catalog
        if q:
            return catalog.find_items_by_name(q, exact=exact)
        return catalog.all_items(include_deleted=include_deleted)

    @application.post(
        "/items",
        response_model=Item,
        status_code=status.HTTP_201_CREATED,
        summary="Add catalog item",
    )
    def items_create(
        payload: ItemCreateRequest = Body(...),
        auth: None = Depends(deps.require_api_token),
        workspace: Workspace = Depends(deps.get_workspace),
    ) -> Item:
        with workspace.catalog() as controller:
            return controller.add_item(
                payload.name,
                payload.category,
                payload.store,
                payload.price,
                payload.unit,
            ).unwrap()

    @application.get("/items/{item_id}", response_model=Item, summary="Get catalog item")
    def items_get(item_id: str, workspace: Workspace = Depends(deps.get_workspace)) -> Item:
        return workspace.controller().catalog.get_item(item_id)

    @application.patch("/items/{item_id}", response_model=Item, summary="Update catalog item")
    def items_update(
        item_id: str,
        payload: ItemUpdateRequest = Body(...),
        auth: None = Depends(deps.require_api_token),
        workspace: Workspace = Depends(deps.get_workspace),
    ) -> Item:
        changes = payload.model_dump(exclude_unset=True)
        if not changes:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="No fields provided for update",
            )
        with workspace.catalog() as controller:
            return controller.update_item(item_id, **changes).unwrap()

    @application.delete("/items/{item_id}", summary="Soft-delete catalog item")
    def items_delete(
        item_id: str,
        auth: None = Depends(deps.require_api_token),
        workspace: Workspace = Depends(deps.get_workspace),
    ) -> dict[str, list[str]]:
        with workspace.catalog() as controller:
            return {"affected_cart_ids": controller.delete_item(item_id)}

    @application.post("/items/{item_id}/restore", response_model=Item, summary="Restore deleted item")
    def items_restore(
        item_id: str,
        restore_to_carts: bool = Query(default=False),
        auth: None = Depends(deps.require_api_token),
        workspace: Workspace = Depends(deps.get_workspace),
    ) -> Item:
        with workspace.catalog() as controller:
            return controller.restore_item(item_id, restore_to_carts=restore_to_carts).unwrap()

    @application.get(
        "/items/{item_id}/price-history",
        response_model=list[PriceHistoryPoint],
        summary="Prices paid on completed trips",
    )
    def items_price_history(
        item_id: str,
        workspace: Workspace = Depends(deps.get_workspace),
    ) -> list[PriceHistoryPoint]:
        controller = workspace.controller()
        controller.catalog.get_item(item_id)
        return controller.price_history(item_id)

    @application.get("/categories", response_model=list[Category], summary="List categories")
    def categories_list(workspace: Workspace = Depends(deps.get_workspace)) -> list[Category]:
        return workspace.controller().catalog.sorted_categories()

    @application.post(
        "/categories",
        response_model=Category,
        status_code=status.HTTP_201_CREATED,
        summary="Create category",
    )
    def categories_create(
        payload: CategoryCreateRequest = Body(...),
        auth: None = Depends(deps.require_api_token),
        workspace: Workspace = Depends(deps.get_workspace),
    ) -> Category:
        with workspace.catalog() as controller:
            return controller.catalog.create_category(
                payload.name,
                color_hex=payload.color_hex,
                emoji=payload.emoji,
            ).unwrap()

    @application.get("/stores", summary="List stores, most recent first")
    def stores_list(workspace: Workspace = Depends(deps.get_workspace)) -> list[str]:
        return workspace.controller().catalog.all_stores()

    @application.post("/stores", status_code=status.HTTP_201_CREATED, summary="Record a store")
    def stores_create(
        payload: StoreRequest = Body(...),
        auth: None = Depends(deps.require_api_token),
        workspace: Workspace = Depends(deps.get_workspace),
    ) -> dict[str, Any]:
        with workspace.catalog() as controller:
            created = controller.catalog.add_store(payload.name)
        return {"name": payload.name.strip(), "created": created}

    @application.put("/stores/{store_name}", summary="Rename a store everywhere")
    def stores_rename(
        store_name: str,
        payload: StoreRequest = Body(...),
        auth: None = Depends(deps.require_api_token),
        workspace: Workspace = Depends(deps.get_workspace),
    ) -> dict[str, Any]:
        with workspace.catalog() as controller:
            touched = controller.catalog.rename_store(store_name, payload.name).unwrap()
        return {"name": payload.name.strip(), "price_options_updated": touched}

    @application.delete(
        "/stores/{store_name}",
        status_code=status.HTTP_204_NO_CONTENT,
        summary="Remove a store from the store list",
    )
    def stores_delete(
        store_name: str,
        auth: None = Depends(deps.require_api_token),
        workspace: Workspace = Depends(deps.get_workspace),
    ) -> Response:
        with workspace.catalog() as controller:
            removed = controller.catalog.delete_store(store_name)
        if not removed:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Store not found")
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    # Carts -------------------------------------------------------------------

    @application.get("/carts", response_model=list[Cart], summary="List carts")
    def carts_list(workspace: Workspace = Depends(deps.get_workspace)) -> list[Cart]:
        return workspace.controller().list_carts()

    @application.post(
        "/carts",
        response_model=Cart,
        status_code=status.HTTP_201_CREATED,
        summary="Create cart",
    )
    def carts_create(
        payload: CartCreateRequest = Body(...),
        auth: None = Depends(deps.require_api_token),
        workspace: Workspace = Depends(deps.get_workspace),
    ) -> Cart:
        with workspace.catalog() as controller:
            return controller.create_cart(payload.name, payload.budget, payload.items).unwrap()

    @application.get("/carts/{cart_id}", response_model=Cart, summary="Get cart")
    def carts_get(cart_id: str, workspace: Workspace = Depends(deps.get_workspace)) -> Cart:
        return workspace.controller().get_cart(cart_id)

    @application.patch("/carts/{cart_id}", response_model=Cart, summary="Rename cart or change budget")
    def carts_update(
        cart_id: str,
        payload: CartUpdateRequest = Body(...),
        auth: None = Depends(deps.require_api_token),
        workspace: Workspace = Depends(deps.get_workspace),
    ) -> Cart:
        changes = payload.model_dump(exclude_unset=True)
        if not changes:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="No fields provided for update",
            )
        # Renames check every cart for duplicate names.
        with workspace.catalog() as controller:
            cart = controller.get_cart(cart_id)
            if "name" in changes:
                controller.rename_cart(cart, changes["name"]).unwrap()
            if "budget" in changes:
                controller.update_budget(cart, changes["budget"]).unwrap()
            return cart

    @application.delete(
        "/carts/{cart_id}",
        status_code=status.HTTP_204_NO_CONTENT,
        summary="Delete cart",
    )
    def carts_delete(
        cart_id: str,
        auth: None = Depends(deps.require_api_token),
        workspace: Workspace = Depends(deps.get_workspace),
    ) -> Response:
        with workspace.cart(cart_id) as controller:
            controller.delete_cart(cart_id)
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    @application.post("/carts/{cart_id}/begin-shopping", response_model=Cart, summary="Start shopping")
    def carts_begin_shopping(
        cart_id: str,
        auth: None = Depends(deps.require_api_token),
        workspace: Workspace = Depends(deps.get_workspace),
    ) -> Cart:
        with workspace.cart(cart_id) as controller:
            return controller.begin_shopping(cart_id)

    @application.post(
        "/carts/{cart_id}/return-to-planning",
        response_model=Cart,
        summary="Abandon the trip and go back to planning",
    )
    def carts_return_to_planning(
        cart_id: str,
        auth: None = Depends(deps.require_api_token),
        workspace: Workspace = Depends(deps.get_workspace),
    ) -> Cart:
        with workspace.cart(cart_id) as controller:
            return controller.return_to_planning(cart_id)

    @application.post(
        "/carts/{cart_id}/complete",
        response_model=CompletionReport,
        summary="Finish the trip",
    )
    def carts_complete(
        cart_id: str,
        payload: CompleteRequest | None = Body(default=None),
        auth: None = Depends(deps.require_api_token),
        workspace: Workspace = Depends(deps.get_workspace),
    ) -> CompletionReport:
        selections = payload.merge_selections if payload else {}
        with workspace.cart(cart_id, vault=True) as controller:
            return controller.complete_shopping(cart_id, selections)

    @application.post("/carts/{cart_id}/reopen", response_model=Cart, summary="Reopen completed trip")
    def carts_reopen(
        cart_id: str,
        auth: None = Depends(deps.require_api_token),
        workspace: Workspace = Depends(deps.get_workspace),
    ) -> Cart:
        with workspace.cart(cart_id) as controller:
            return controller.reopen(cart_id)

    @application.get("/carts/{cart_id}/summary", response_model=CartSummary, summary="Cart totals")
    def carts_summary(cart_id: str, workspace: Workspace = Depends(deps.get_workspace)) -> CartSummary:
        return workspace.controller().summary(cart_id)

    @application.get(
        "/carts/{cart_id}/groups",
        response_model=Union[list[StoreGroup], list[CategoryGroup]],
        summary="Cart lines grouped by store or category",
    )
    def carts_groups(
        cart_id: str,
        by: str = Query(default="store", pattern="^(store|category)$"),
        order: StoreOrder = Query(default=StoreOrder.ALPHABETICAL),
        workspace: Workspace = Depends(deps.get_workspace),
    ) -> Union[list[StoreGroup], list[CategoryGroup]]:
        controller = workspace.controller()
        cart = controller.get_cart(cart_id)
        if by == "category":
            return controller.ledger.group_by_category(cart.cart_items)
        return controller.ledger.group_by_store(cart.cart_items, order)

    # Cart lines --------------------------------------------------------------

    @application.post(
        "/carts/{cart_id}/items",
        response_model=CartItem,
        status_code=status.HTTP_201_CREATED,
        summary="Add catalog item to cart",
    )
    def cart_items_add(
        cart_id: str,
        payload: CartItemAddRequest = Body(...),
        auth: None = Depends(deps.require_api_token),
        workspace: Workspace = Depends(deps.get_workspace),
    ) -> CartItem:
        with workspace.cart(cart_id) as controller:
            return controller.add_catalog_item(
                cart_id,
                payload.item_id,
                payload.quantity,
                payload.store,
            ).unwrap()

    @application.post(
        "/carts/{cart_id}/ad-hoc-items",
        response_model=CartItem,
        status_code=status.HTTP_201_CREATED,
        summary="Add shopping-only item to cart",
    )
    def cart_items_add_ad_hoc(
        cart_id: str,
        payload: AdHocItemRequest = Body(...),
        auth: None = Depends(deps.require_api_token),
        workspace: Workspace = Depends(deps.get_workspace),
    ) -> CartItem:
        with workspace.cart(cart_id) as controller:
            return controller.add_ad_hoc_item(
                cart_id,
                payload.name,
                payload.store,
                payload.price,
                payload.unit,
                payload.quantity,
                payload.category,
            ).unwrap()

    @application.put(
        "/carts/{cart_id}/items/{cart_item_id}/quantity",
        response_model=QuantityChange,
        summary="Set line quantity",
    )
    def cart_items_quantity(
        cart_id: str,
        cart_item_id: str,
        payload: QuantityRequest = Body(...),
        auth: None = Depends(deps.require_api_token),
        workspace: Workspace = Depends(deps.get_workspace),
    ) -> QuantityChange:
        with workspace.cart(cart_id) as controller:
            return controller.set_quantity(
                cart_id,
                cart_item_id,
                payload.quantity,
                confirm_removal=payload.confirm_removal,
            )

    @application.post(
        "/carts/{cart_id}/items/{cart_item_id}/increment",
        response_model=QuantityChange,
        summary="Increase line quantity",
    )
    def cart_items_increment(
        cart_id: str,
        cart_item_id: str,
        auth: None = Depends(deps.require_api_token),
        workspace: Workspace = Depends(deps.get_workspace),
    ) -> QuantityChange:
        with workspace.cart(cart_id) as controller:
            return controller.increment(cart_id, cart_item_id)

    @application.post(
        "/carts/{cart_id}/items/{cart_item_id}/decrement",
        response_model=QuantityChange,
        summary="Decrease line quantity",
    )
    def cart_items_decrement(
        cart_id: str,
        cart_item_id: str,
        confirm_removal: bool = Query(default=False),
        auth: None = Depends(deps.require_api_token),
        workspace: Workspace = Depends(deps.get_workspace),
    ) -> QuantityChange:
        with workspace.cart(cart_id) as controller:
            return controller.decrement(cart_id, cart_item_id, confirm_removal=confirm_removal)

    @application.delete(
        "/carts/{cart_id}/items/{cart_item_id}",
        response_model=QuantityChange,
        summary="Remove line (skips planned lines while shopping)",
    )
    def cart_items_remove(
        cart_id: str,
        cart_item_id: str,
        confirm: bool = Query(default=False),
        auth: None = Depends(deps.require_api_token),
        workspace: Workspace = Depends(deps.get_workspace),
    ) -> QuantityChange:
        with workspace.cart(cart_id) as controller:
            return controller.remove_cart_item(cart_id, cart_item_id, confirm=confirm)

    @application.post(
        "/carts/{cart_id}/items/{cart_item_id}/fulfill",
        response_model=CartItem,
        summary="Record purchase",
    )
    def cart_items_fulfill(
        cart_id: str,
        cart_item_id: str,
        payload: FulfillRequest = Body(...),
        auth: None = Depends(deps.require_api_token),
        workspace: Workspace = Depends(deps.get_workspace),
    ) -> CartItem:
        with workspace.cart(cart_id) as controller:
            return controller.fulfill(
                cart_id,
                cart_item_id,
                payload.actual_price,
                payload.actual_quantity,
                payload.actual_unit,
                payload.actual_store,
            ).unwrap()

    @application.post(
        "/carts/{cart_id}/items/{cart_item_id}/unfulfill",
        response_model=CartItem,
        summary="Undo purchase",
    )
    def cart_items_unfulfill(
        cart_id: str,
        cart_item_id: str,
        auth: None = Depends(deps.require_api_token),
        workspace: Workspace = Depends(deps.get_workspace),
    ) -> CartItem:
        with workspace.cart(cart_id) as controller:
            return controller.unfulfill(cart_id, cart_item_id)

    @application.post(
        "/carts/{cart_id}/items/{cart_item_id}/skip",
        response_model=CartItem,
        summary="Skip line for this trip",
    )
    def cart_items_skip(
        cart_id: str,
        cart_item_id: str,
        auth: None = Depends(deps.require_api_token),
        workspace: Workspace = Depends(deps.get_workspace),
    ) -> CartItem:
        with workspace.cart(cart_id) as controller:
            return controller.skip(cart_id, cart_item_id)

    @application.post(
        "/carts/{cart_id}/items/{cart_item_id}/unskip",
        response_model=CartItem,
        summary="Bring a skipped line back",
    )
    def cart_items_unskip(
        cart_id: str,
        cart_item_id: str,
        auth: None = Depends(deps.require_api_token),
        workspace: Workspace = Depends(deps.get_workspace),
    ) -> CartItem:
        with workspace.cart(cart_id) as controller:
            return controller.unskip(cart_id, cart_item_id)

    @application.put(
        "/carts/{cart_id}/items/{cart_item_id}/store",
        response_model=CartItem,
        summary="Plan a line at another store",
    )
    def cart_items_store(
        cart_id: str,
        cart_item_id: str,
        payload: StoreRequest = Body(...),
        auth: None = Depends(deps.require_api_token),
        workspace: Workspace = Depends(deps.get_workspace),
    ) -> CartItem:
        with workspace.cart(cart_id) as controller:
            return controller.change_store(cart_id, cart_item_id, payload.name).unwrap()

    return application


class _RequestModel(BaseModel):
    # NaN and infinity are rejected with 422 before they reach a cart.
    model_config = ConfigDict(allow_inf_nan=False)


class ItemCreateRequest(_RequestModel):
    name: str = Field(max_length=255)
    category: Optional[str] = Field(default=None, max_length=255)
    store: str = Field(max_length=255)
    price: float
    unit: str = Field(default="", max_length=64)


class ItemUpdateRequest(_RequestModel):
    name: Optional[str] = Field(default=None, max_length=255)
    category: Optional[str] = Field(default=None, max_length=255)
    store: Optional[str] = Field(default=None, max_length=255)
    price: Optional[float] = None
    unit: Optional[str] = Field(default=None, max_length=64)


class CategoryCreateRequest(BaseModel):
    name: str = Field(max_length=255)
    color_hex: Optional[str] = Field(default=None, max_length=16)
    emoji: Optional[str] = Field(default=None, max_length=16)


class StoreRequest(BaseModel):
    name: str = Field(max_length=255)


class CartCreateRequest(_RequestModel):
    name: str = Field(max_length=255)
    budget: float = 0.0
    items: Dict[str, float] = Field(default_factory=dict)


class CartUpdateRequest(_RequestModel):
    name: Optional[str] = Field(default=None, max_length=255)
    budget: Optional[float] = None


class CompleteRequest(BaseModel):
    merge_selections: Dict[str, bool] = Field(default_factory=dict)


class CartItemAddRequest(_RequestModel):
    item_id: str = Field(min_length=1, max_length=32)
    quantity: float = 1.0
    store: Optional[str] = Field(default=None, max_length=255)


class AdHocItemRequest(_RequestModel):
    name: str = Field(max_length=255)
    store: str = Field(max_length=255)
    price: float
    unit: str = Field(default="", max_length=64)
    quantity: float = 1.0
    category: Optional[str] = Field(default=None, max_length=255)


class QuantityRequest(_RequestModel):
    quantity: float
    confirm_removal: bool = False


class FulfillRequest(_RequestModel):
    actual_price: float
    actual_quantity: float
    actual_unit: Optional[str] = Field(default=None, max_length=64)
    actual_store: Optional[str] = Field(default=None, max_length=255)


app = create_app()

__all__ = ["app", "create_app"]
