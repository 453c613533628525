from fastapi import FastAPI, Response
from fastapi.middleware.cors import CORSMiddleware

from storefront.api.error_handlers import register_exception_handlers
from storefront.api.routers import cart, coupons, inventory, orders
from storefront.core.config import settings
from storefront.core.logging import setup_logging
from storefront.core.metrics import export_metrics
from storefront.middleware import ObservabilityMiddleware

# --- Models registration (Alembic and create_all need every table) ---
import storefront.models.product    # noqa: F401
import storefront.models.customer   # noqa: F401
import storefront.models.coupon     # noqa: F401
import storefront.models.cart       # noqa: F401
import storefront.models.order      # noqa: F401
import storefront.models.inventory  # noqa: F401

setup_logging()

TAGS_METADATA = [
    {"name": "cart", "description": "Shopping carts for signed-in users and guests."},
    {"name": "orders", "description": "Checkout and the order lifecycle."},
    {"name": "inventory", "description": "Stock counters and the movement ledger."},
    {"name": "coupons", "description": "Coupon management and eligibility checks."},
]

app = FastAPI(
    title=settings.PROJECT_NAME,
    version="0.1.0",
    description=(
        "Cart, checkout and inventory core.\n\n"
        "- **Cart**: line items with live stock reservations and coupon pricing.\n"
        "- **Orders**: atomic checkout, payments, shipping, cancellation and refunds.\n"
        "- **Inventory**: conditional stock counters and an auditable movement ledger.\n\n"
        "Callers identify themselves with `X-User-Id` or `X-Session-Id`."
    ),
    openapi_tags=TAGS_METADATA,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)

register_exception_handlers(app)

# --- Middlewares ---
app.add_middleware(ObservabilityMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# --- Routers ---
app.include_router(cart.router, prefix=settings.API_V1_STR)
app.include_router(orders.router, prefix=settings.API_V1_STR)
app.include_router(inventory.router, prefix=settings.API_V1_STR)
app.include_router(coupons.router, prefix=settings.API_V1_STR)


@app.get("/metrics", include_in_schema=False)
def metrics() -> Response:
    payload, content_type = export_metrics()
    return Response(content=payload, media_type=content_type)


@app.get("/", include_in_schema=False)
def root():
    return {"status": "ok", "docs_url": "/docs", "redoc_url": "/redoc"}
