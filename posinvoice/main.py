# posinvoice/main.py
import time
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, FastAPI, Header, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse, Response

from . import services
from .config import Config
from .core import (
    AddToCartIn, BackupIn, CheckoutIn, ClearCartIn, CustomerIn, CustomerUpdate,
    ProductIn, ProductUpdate, ProfileUpdate, RemoveFromCartIn, UpdateCartLineIn,
)
from .database import KVStore, PosStore
from .errors import PosError, Unauthorized, ValidationFailed
from .logger import get_logger, setup_logger
from .models import ShopProfile
from .receipts import invoice_number, render_pdf, render_text
from .time_utils import as_utc

log = get_logger("api")


# ---------------------------
# Dependencies
# ---------------------------
def get_store(request: Request) -> PosStore:
    return request.app.state.store


def get_config(request: Request):
    return request.app.state.config


def require_api_key(request: Request, authorization: Optional[str] = Header(None)):
    expected = request.app.state.config.API_KEY
    if not expected:
        return
    if authorization != f"Bearer {expected}":
        raise Unauthorized()


public = APIRouter()
router = APIRouter(dependencies=[Depends(require_api_key)])


@public.get("/health")
async def health():
    return {"status": "ok"}


# ---------------------------
# Shop profile
# ---------------------------
@router.get("/profile")
async def get_profile(store: PosStore = Depends(get_store)):
    return await services.get_profile_logic(store)


@router.put("/profile")
async def update_profile(payload: ProfileUpdate, store: PosStore = Depends(get_store)):
    return await services.update_profile_logic(store, payload)


# ---------------------------
# Product endpoints
# ---------------------------
@router.post("/products", status_code=201)
async def create_product(payload: ProductIn, store: PosStore = Depends(get_store)):
    return await services.create_product_logic(store, payload)


@router.get("/products")
async def list_products(
    category: Optional[str] = None,
    in_stock_only: bool = False,
    store: PosStore = Depends(get_store),
):
    return await services.list_products_logic(store, category, in_stock_only)


@router.get("/products/search")
async def search_products(q: str = Query(..., min_length=1), store: PosStore = Depends(get_store)):
    return await services.search_products_logic(store, q)


@router.get("/products/{product_id}")
async def get_product(product_id: str, store: PosStore = Depends(get_store)):
    return await services.get_product_logic(store, product_id)


@router.put("/products/{product_id}")
async def update_product(product_id: str, payload: ProductUpdate, store: PosStore = Depends(get_store)):
    return await services.update_product_logic(store, product_id, payload)


@router.delete("/products/{product_id}")
async def delete_product(product_id: str, store: PosStore = Depends(get_store)):
    return await services.delete_product_logic(store, product_id)


# ---------------------------
# Customer endpoints
# ---------------------------
@router.get("/customers")
async def list_customers(store: PosStore = Depends(get_store)):
    return await services.list_customers_logic(store)


@router.post("/customers")
async def add_customer(payload: CustomerIn, store: PosStore = Depends(get_store)):
    return await services.add_customer_logic(store, payload)


@router.get("/customers/{customer_id}")
async def get_customer(customer_id: str, store: PosStore = Depends(get_store)):
    return await services.get_customer_logic(store, customer_id)


@router.put("/customers/{customer_id}")
async def update_customer(customer_id: str, payload: CustomerUpdate, store: PosStore = Depends(get_store)):
    return await services.update_customer_logic(store, customer_id, payload)


# ---------------------------
# Cart endpoints
# ---------------------------
@router.post("/cart/add")
async def cart_add(payload: AddToCartIn, store: PosStore = Depends(get_store)):
    return await services.cart_add_logic(store, payload)


@router.post("/cart/update")
async def cart_update(payload: UpdateCartLineIn, store: PosStore = Depends(get_store)):
    return await services.cart_update_logic(store, payload)


@router.post("/cart/remove")
async def cart_remove(payload: RemoveFromCartIn, store: PosStore = Depends(get_store)):
    return await services.cart_remove_logic(store, payload)


@router.post("/cart/clear")
async def cart_clear(payload: ClearCartIn, store: PosStore = Depends(get_store)):
    return await services.cart_clear_logic(store, payload)


@router.get("/cart/{session_id}")
async def view_cart(
    session_id: str,
    discount_percent: float = 0.0,
    gst_enabled: bool = True,
    store: PosStore = Depends(get_store),
):
    return await services.view_cart_logic(store, session_id, discount_percent, gst_enabled)


@router.post("/cart/checkout")
async def cart_checkout(
    session_id: str,
    payload: Optional[CheckoutIn] = None,
    idempotency_key: Optional[str] = Header(None),
    store: PosStore = Depends(get_store),
):
    return await services.checkout_logic(store, session_id, payload or CheckoutIn(), idempotency_key)


# ---------------------------
# Sales
# ---------------------------
@router.get("/sales")
async def list_sales(
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    store: PosStore = Depends(get_store),
):
    return await services.list_sales_logic(store, as_utc(start), as_utc(end))


@router.get("/sales/{sale_id}")
async def get_sale(sale_id: str, store: PosStore = Depends(get_store)):
    sale = await services.get_sale_logic(store, sale_id)
    return sale.model_dump(mode="json")


@router.get("/sales/{sale_id}/receipt")
async def sale_receipt(
    sale_id: str,
    format: str = "text",
    layout: str = "thermal",
    store: PosStore = Depends(get_store),
):
    sale = await services.get_sale_logic(store, sale_id)
    profile = ShopProfile.model_validate(await services.get_profile_logic(store))
    if format == "text":
        return PlainTextResponse(render_text(sale, profile, layout))
    if format == "pdf":
        pdf = render_pdf(sale, profile, layout)
        filename = f"invoice-{invoice_number(sale)}.pdf"
        return Response(
            content=pdf,
            media_type="application/pdf",
            headers={"Content-Disposition": f'inline; filename="{filename}"'},
        )
    raise ValidationFailed(f"format:{format}")


# ---------------------------
# Reports
# ---------------------------
@router.get("/reports/sales")
async def sales_report(
    period: str = "week",
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    granularity: Optional[str] = None,
    store: PosStore = Depends(get_store),
):
    return await services.sales_report_logic(store, period, as_utc(start), as_utc(end), granularity)


@router.get("/reports/dashboard")
async def dashboard(store: PosStore = Depends(get_store), config=Depends(get_config)):
    return await services.dashboard_logic(store, config.LOW_STOCK_THRESHOLD)


@router.get("/reports/inventory")
async def inventory(store: PosStore = Depends(get_store), config=Depends(get_config)):
    return await services.inventory_logic(store, config.LOW_STOCK_THRESHOLD)


# ---------------------------
# Backup / utility
# ---------------------------
@router.get("/backup")
async def export_backup(store: PosStore = Depends(get_store)):
    return await services.export_backup_logic(store)


@router.post("/backup/import")
async def import_backup(payload: BackupIn, store: PosStore = Depends(get_store)):
    return await services.import_backup_logic(store, payload)


@router.post("/reset")
async def reset_all(store: PosStore = Depends(get_store)):
    return await services.reset_all_logic(store)


# ---------------------------
# App factory
# ---------------------------
def create_app(config=Config, store: Optional[PosStore] = None) -> FastAPI:
    setup_logger(config.LOG_DIR, config.LOG_LEVEL)

    if store is None:
        store = PosStore(KVStore(config.DATA_FILE), ShopProfile(shop_name=config.SHOP_NAME))

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if config.SEED_SAMPLE_PRODUCTS:
            await services.seed_sample_products_logic(store)
        yield

    app = FastAPI(title="pos-invoice", lifespan=lifespan)
    app.state.config = config
    app.state.store = store

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def access_log(request: Request, call_next):
        started = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000
        log.info("%s %s -> %d (%.1f ms)", request.method, request.url.path, response.status_code, elapsed_ms)
        return response

    @app.exception_handler(PosError)
    async def pos_error_handler(request: Request, exc: PosError):
        if exc.status_code >= 500:
            log.error("%s %s failed: %s", request.method, request.url.path, exc.detail)
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail, "message": exc.message})

    app.include_router(public)
    app.include_router(router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("posinvoice.main:app", host="127.0.0.1", port=Config.PORT)
