import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from storefront.api import categories, orders, products, reviews, users, vendors
from storefront.api.errors import register_error_handlers
from storefront.core.config import Settings, configure_logging, get_settings
from storefront.core.security import configure_password_context
from storefront.storage.base import Storage
from storefront.storage.selector import build_storage, init_storage

logger = logging.getLogger(__name__)


def create_app(settings: Optional[Settings] = None, storage: Optional[Storage] = None) -> FastAPI:
    """
    Build the application. A ``storage`` passed in is used as-is (already
    initialised); otherwise the backend is chosen from ``settings``.
    """
    settings = settings or get_settings()
    configure_logging(settings.LOG_LEVEL)
    configure_password_context(settings.PASSWORD_SCHEMES)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = storage is None
        if owned:
            app.state.storage = build_storage(settings)
            init_storage(app.state.storage, settings)
        try:
            yield
        finally:
            if owned:
                app.state.storage.close()
                logger.info("Storage closed")

    app = FastAPI(title=settings.APP_NAME, lifespan=lifespan)
    app.state.settings = settings
    if storage is not None:
        app.state.storage = storage

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_error_handlers(app)

    app.include_router(users.router, prefix="/api/users", tags=["users"])
    app.include_router(categories.router, prefix="/api/categories", tags=["categories"])
    app.include_router(products.router, prefix="/api/products", tags=["products"])
    app.include_router(vendors.router, prefix="/api/vendors", tags=["vendors"])
    app.include_router(orders.router, prefix="/api/orders", tags=["orders"])
    app.include_router(reviews.router, prefix="/api/reviews", tags=["reviews"])

    @app.get("/")
    def root():
        return {"status": "ok", "app": settings.APP_NAME, "storage": type(app.state.storage).__name__}

    return app
