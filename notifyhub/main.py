import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from notifyhub.api.v1.router import router as v1_router
from notifyhub.channels.registry import ChannelRegistry
from notifyhub.core.config import Settings, settings
from notifyhub.core.db import make_engine, make_session_factory
from notifyhub.core.telemetry import instrument_engine, setup_telemetry
from notifyhub.services.order_hooks import SqlOrderNotifiedHook
from notifyhub.services.outbox_store import OutboxStore

log = logging.getLogger(__name__)


def create_app(cfg: Settings = settings) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        engine = make_engine(cfg.database_url)
        if cfg.telemetry_enabled:
            instrument_engine(engine)

        session_factory = make_session_factory(engine)
        app.state.outbox_store = OutboxStore.from_settings(session_factory, cfg)
        app.state.order_hook = SqlOrderNotifiedHook(session_factory)
        app.state.channel_sender = ChannelRegistry.from_import_paths(cfg.channel_senders)
        log.info("notify api: started channels=%s", app.state.channel_sender.channels)
        try:
            yield
        finally:
            await engine.dispose()

    app = FastAPI(title="Notification Outbox", version="0.1.0", lifespan=lifespan)
    if cfg.telemetry_enabled:
        setup_telemetry(app, cfg)
    app.include_router(v1_router)
    return app


app = create_app()
