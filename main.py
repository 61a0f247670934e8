import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from dotenv import load_dotenv
from fastapi import Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

import pricing
from auth import get_principal, require_elevated
from catalog import DEFAULT_PAGE_SIZE, CatalogService
from database import Database
from errors import StorageError, StoreError, ValidationError
from inventory import InventoryStore
from lifecycle import OrderLifecycle
from orders import OrderAssembler
from schemas import (
    Brand,
    Category,
    Gender,
    OrderStatus,
    PlaceOrderRequest,
    Principal,
    ProductCreate,
    ProductUpdate,
    QuoteRequest,
    ReviewRequest,
    StatusUpdateRequest,
    StockUpdateRequest,
)
from seed import ensure_seeded

load_dotenv()

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("shoestore")


def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


def attach_services(app: FastAPI, database: Optional[Database]):
    app.state.database = database
    if database is None:
        app.state.inventory = app.state.catalog = app.state.orders = app.state.lifecycle = None
        return
    # One InventoryStore per process so its per-product locks are shared
    inventory = InventoryStore(database)
    app.state.inventory = inventory
    app.state.catalog = CatalogService(database, inventory)
    app.state.orders = OrderAssembler(database, inventory)
    app.state.lifecycle = OrderLifecycle(
        database, inventory, strict_transitions=_env_flag("STRICT_STATUS_TRANSITIONS")
    )


def create_app(database: Optional[Database] = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owns_database = app.state.database is None
        if owns_database:
            attach_services(app, Database.from_env())
        if app.state.database is not None and _env_flag("SEED_ON_STARTUP", "true"):
            ensure_seeded(app.state.database)
        yield
        if owns_database and app.state.database is not None:
            app.state.database.close()

    app = FastAPI(title="Stride Shoe Store API", version="1.0.0", lifespan=lifespan)
    attach_services(app, database)

    origins = [o.strip() for o in os.getenv("CLIENT_URLS", "*").split(",") if o.strip()]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(StoreError)
    async def store_error_handler(request: Request, exc: StoreError):
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return JSONResponse(status_code=exc.status_code, content={"success": False, "error": exc.message})

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        details = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'] if p != 'body')}: {err['msg']}" for err in exc.errors()
        )
        return JSONResponse(status_code=400, content={"success": False, "error": details})

    _register_routes(app)
    return app


# Helpers

def ok(data, **extra) -> dict:
    return {"success": True, "data": data, **extra}


def dump(model) -> dict:
    return model.model_dump(mode="json")


def _service(request: Request, name: str):
    service = getattr(request.app.state, name, None)
    if service is None:
        raise StorageError("Database not available")
    return service


def get_catalog(request: Request) -> CatalogService:
    return _service(request, "catalog")


def get_inventory(request: Request) -> InventoryStore:
    return _service(request, "inventory")


def get_orders(request: Request) -> OrderAssembler:
    return _service(request, "orders")


def get_lifecycle(request: Request) -> OrderLifecycle:
    return _service(request, "lifecycle")


def _register_routes(app: FastAPI):
    # ---------
    # Root/Test
    # ---------

    @app.get("/")
    def read_root():
        return {"success": True, "message": "Shoe Store API is running", "version": app.version}

    @app.get("/test")
    def test_database(request: Request):
        database: Optional[Database] = request.app.state.database
        response = {
            "backend": "✅ Running",
            "database": "❌ Not Available",
            "database_name": None,
            "connection_status": "Not Connected",
            "collections": [],
        }
        if database is not None:
            response["database_name"] = database.name
            if database.ping():
                response["connection_status"] = "Connected"
                response["collections"] = database.list_collection_names()[:10]
                response["database"] = "✅ Connected & Working"
            else:
                response["database"] = "⚠️  Configured but unreachable"
        response["database_url"] = "✅ Set" if os.getenv("DATABASE_URL") else "❌ Not Set"
        return response

    # ---------------
    # Catalog Endpoints
    # ---------------

    @app.get("/api/products")
    def list_products(
        search: Optional[str] = None,
        brand: Optional[Brand] = None,
        category: Optional[Category] = None,
        gender: Optional[Gender] = None,
        min_price: Optional[float] = Query(None, ge=0),
        max_price: Optional[float] = Query(None, ge=0),
        featured: bool = False,
        sort_by: Optional[str] = None,
        order: str = Query("asc", pattern="^(asc|desc)$"),
        page: int = Query(1, ge=1),
        limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=100),
        catalog: CatalogService = Depends(get_catalog),
    ):
        result = catalog.list_products(
            search=search, brand=brand, category=category, gender=gender,
            min_price=min_price, max_price=max_price, featured=featured,
            sort_by=sort_by, order=order, page=page, limit=limit,
        )
        products = [dump(p) for p in result["products"]]
        return ok(products, count=len(products), total=result["total"],
                  page=result["page"], pages=result["pages"])

    @app.get("/api/products/featured")
    def featured_products(catalog: CatalogService = Depends(get_catalog)):
        products = [dump(p) for p in catalog.featured_products()]
        return ok(products, count=len(products))

    @app.get("/api/products/{product_id}")
    def get_product(product_id: str, catalog: CatalogService = Depends(get_catalog)):
        return ok(dump(catalog.find_product_by_id(product_id)))

    @app.post("/api/products", status_code=201)
    def create_product(
        payload: ProductCreate,
        principal: Principal = Depends(require_elevated),
        catalog: CatalogService = Depends(get_catalog),
    ):
        return ok(dump(catalog.create_product(payload)))

    @app.patch("/api/products/{product_id}")
    def update_product(
        product_id: str,
        payload: ProductUpdate,
        principal: Principal = Depends(require_elevated),
        catalog: CatalogService = Depends(get_catalog),
    ):
        return ok(dump(catalog.update_product(product_id, payload)))

    @app.patch("/api/products/{product_id}/stock")
    def update_stock(
        product_id: str,
        payload: StockUpdateRequest,
        principal: Principal = Depends(require_elevated),
        inventory: InventoryStore = Depends(get_inventory),
    ):
        if payload.stock is not None:
            product = inventory.set_stock(product_id, payload.color, payload.size, payload.stock)
        elif payload.quantity is not None:
            product = inventory.adjust_stock(product_id, payload.color, payload.size, payload.quantity)
        else:
            raise ValidationError("Provide either stock (set) or quantity (increment)")
        logger.info("Stock for %s (%s, size %s) updated by %s",
                    product_id, payload.color, payload.size, principal.user_id)
        return ok(dump(product))

    @app.delete("/api/products/{product_id}")
    def delete_product(
        product_id: str,
        principal: Principal = Depends(require_elevated),
        catalog: CatalogService = Depends(get_catalog),
    ):
        catalog.delete_product(product_id)
        return ok({})

    @app.post("/api/products/{product_id}/reviews", status_code=201)
    def add_review(
        product_id: str,
        payload: ReviewRequest,
        principal: Principal = Depends(get_principal),
        catalog: CatalogService = Depends(get_catalog),
    ):
        return ok(dump(catalog.add_review(product_id, principal, payload.rating, payload.comment)))

    # -------------------------
    # Pricing endpoints (quote)
    # -------------------------

    @app.post("/api/pricing/quote")
    def pricing_quote(payload: QuoteRequest):
        return ok(pricing.quote(payload.items))

    # ---------------
    # Orders Endpoints
    # ---------------

    @app.post("/api/orders", status_code=201)
    def place_order(
        payload: PlaceOrderRequest,
        principal: Principal = Depends(get_principal),
        orders: OrderAssembler = Depends(get_orders),
    ):
        order = orders.place_order(
            principal,
            payload.items,
            payload.shipping_address,
            payload.payment_method,
            payload.customer_notes,
        )
        return ok(dump(order), message="Order placed successfully")

    @app.get("/api/orders/me")
    def my_orders(
        principal: Principal = Depends(get_principal),
        lifecycle: OrderLifecycle = Depends(get_lifecycle),
    ):
        orders = [dump(o) for o in lifecycle.list_my_orders(principal)]
        return ok(orders, count=len(orders))

    @app.get("/api/orders")
    def list_orders(
        status: Optional[OrderStatus] = None,
        page: int = Query(1, ge=1),
        limit: int = Query(20, ge=1, le=100),
        principal: Principal = Depends(require_elevated),
        lifecycle: OrderLifecycle = Depends(get_lifecycle),
    ):
        result = lifecycle.list_orders(principal, status.value if status else None, page, limit)
        orders = [dump(o) for o in result["orders"]]
        return ok(orders, count=len(orders), total=result["total"],
                  page=result["page"], pages=result["pages"])

    @app.get("/api/orders/{order_id}")
    def get_order(
        order_id: str,
        principal: Principal = Depends(get_principal),
        lifecycle: OrderLifecycle = Depends(get_lifecycle),
    ):
        return ok(dump(lifecycle.get_order(order_id, principal)))

    @app.patch("/api/orders/{order_id}/status")
    def update_order_status(
        order_id: str,
        payload: StatusUpdateRequest,
        principal: Principal = Depends(require_elevated),
        lifecycle: OrderLifecycle = Depends(get_lifecycle),
    ):
        order = lifecycle.update_status(
            order_id,
            payload.status,
            principal,
            note=payload.note,
            tracking_number=payload.tracking_number,
            admin_notes=payload.admin_notes,
        )
        return ok(dump(order), message="Order status updated successfully")

    @app.patch("/api/orders/{order_id}/deliver")
    def deliver_order(
        order_id: str,
        principal: Principal = Depends(require_elevated),
        lifecycle: OrderLifecycle = Depends(get_lifecycle),
    ):
        return ok(dump(lifecycle.mark_delivered(order_id, principal)), message="Order marked as delivered")

    @app.delete("/api/orders/{order_id}")
    def cancel_order(
        order_id: str,
        principal: Principal = Depends(get_principal),
        lifecycle: OrderLifecycle = Depends(get_lifecycle),
    ):
        order = lifecycle.cancel_order(order_id, principal)
        return ok(dump(order), message="Order cancelled successfully")

    # ---------------
    # Seed demo data
    # ---------------

    @app.post("/api/seed")
    def seed_demo(request: Request, principal: Principal = Depends(require_elevated)):
        """Seed sample products if the catalog is empty."""
        database = _service(request, "database")
        return ok({"seeded": ensure_seeded(database)})


app = create_app()

if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
