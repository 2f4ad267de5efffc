from contextlib import asynccontextmanager
from fastapi import FastAPI
from storefront.api.routers import public_routers,admin_routers
from storefront.common.custom_exceptions import register_all_exceptions
from storefront.common.logging_setup import setup_logging, shutdown_logging
from storefront.middlewares.request_id_middleware import RequestIdMiddleware
from storefront.db.connection import async_engine
from storefront.api.__init__ import cur_version
from storefront.notifications.worker import NotificationWorker
from storefront.payments.zarinpal import ZarinpalGateway
from storefront.config.admin_config import admin_config
from storefront.config.settings import config_settings
from metrics.custom_instrumentator import instrumentator


@asynccontextmanager
async def app_lifespan(app: FastAPI):
    setup_logging()

    notifier = NotificationWorker()
    await notifier.start()
    app.state.notifier = notifier
    app.state.gateway = ZarinpalGateway()

    try:
        yield
    finally:
        # new requests are no longer accepted here , let queued sms go out first
        await notifier.shutdown()
        # safe to dispose DB engine after workers exit
        await async_engine.dispose()
        shutdown_logging()


def create_app():
    app=FastAPI(
        title="Storefront",
        version=cur_version,
        lifespan=app_lifespan)

    app.include_router(public_routers)

    if admin_config.ENABLE_ADMIN:
        app.include_router(admin_routers)      # mounts /api/v1/admin

    app.add_middleware(RequestIdMiddleware)
    register_all_exceptions(app)
    if config_settings.METRICS_ENABLED:
        instrumentator.instrument(app).expose(app, endpoint="/metrics")

    return app

app=create_app()
