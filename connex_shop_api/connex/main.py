# connex/main.py
from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import timedelta
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .db import close_pool, ensure_schema, get_pool
from .db.cart_store import PostgresCartStore
from .db.orders_store import PostgresOrderStore
from .errors import ShopError
from .log import get_logger, set_trace_id, setup_logging
from .routes import cart as cart_router
from .routes import mpesa as mpesa_router
from .routes import orders as orders_router
from .services.mpesa import MpesaClient
from .services.orders import OrderLifecycle
from .services.scheduler import PickupSweepScheduler
from .services.sms import SmsSender
from .settings import Settings, settings as default_settings

logger = get_logger(__name__)


def build_engine(cfg: Settings, pool) -> OrderLifecycle:
    return OrderLifecycle(
        PostgresOrderStore(pool),
        MpesaClient(cfg),
        SmsSender(cfg),
        country_code=cfg.country_code,
        grace_period=timedelta(hours=cfg.pickup_grace_hours),
    )


def create_app(
    cfg: Optional[Settings] = None,
    engine: Optional[OrderLifecycle] = None,
    cart_store: Any = None,
    start_scheduler: Optional[bool] = None,
) -> FastAPI:
    """
    Build the API. With ``engine`` given (tests), no database pool or
    provider clients are created at startup.
    """
    cfg = cfg or default_settings
    setup_logging(cfg.log_level)
    owns_resources = engine is None
    run_sweep = cfg.sweep_enabled if start_scheduler is None else start_scheduler

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if owns_resources:
            pool = await get_pool()
            await ensure_schema(pool)
            app.state.engine = build_engine(cfg, pool)
            app.state.cart_store = PostgresCartStore(pool)
            logger.info("postgres pool ready")
        if run_sweep:
            app.state.scheduler = PickupSweepScheduler(
                app.state.engine, cfg.sweep_interval_seconds
            )
            app.state.scheduler.start()
        try:
            yield
        finally:
            if app.state.scheduler is not None:
                await app.state.scheduler.stop()
                app.state.scheduler = None
            if owns_resources:
                await app.state.engine.payments.aclose()
                await app.state.engine.notifier.aclose()
                await close_pool()

    app = FastAPI(title="Connex Creative Shop API", lifespan=lifespan)
    app.state.settings = cfg
    app.state.engine = engine
    app.state.cart_store = cart_store
    app.state.scheduler = None

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cfg.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def _trace_requests(request: Request, call_next):
        tid = set_trace_id(request.headers.get("x-request-id"))
        response = await call_next(request)
        response.headers["X-Request-ID"] = tid
        return response

    @app.exception_handler(ShopError)
    async def _shop_error(request: Request, exc: ShopError):
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s: %s", request.method, request.url.path,
                         type(exc).__name__, exc)
        else:
            logger.info("%s %s rejected: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=exc.status_code, content={"message": exc.public_message})

    app.include_router(orders_router.router)
    app.include_router(mpesa_router.router)
    app.include_router(cart_router.router)

    @app.get("/")
    def root():
        return {"message": "Connex Creative API is running"}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=default_settings.api_host, port=default_settings.api_port)
