from contextlib import asynccontextmanager

import sentry_sdk
import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from opentolk import __version__
from opentolk.api import command, health, plugins
from opentolk.config import settings
from opentolk.dependencies import Engine, build_engine

structlog.configure(
    processors=[
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.dev.ConsoleRenderer(),
    ],
    wrapper_class=structlog.make_filtering_bound_logger(0),
)

if settings.sentry_dsn:
    sentry_sdk.init(dsn=settings.sentry_dsn, traces_sample_rate=0.2)


def create_app(engine: Engine | None = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        log = structlog.get_logger()
        owned = getattr(app.state, "engine", None) is None
        if owned:
            app.state.engine = build_engine(settings)
        engine = app.state.engine
        log.info(
            "Starting OpenTolk engine",
            plugins=len(engine.registry.plugins),
            llm_provider=settings.llm_provider if engine.llm else None,
            environment=settings.environment,
        )
        yield
        if owned:
            await engine.aclose()

    app = FastAPI(
        title="OpenTolk Plugin Engine",
        version=__version__,
        lifespan=lifespan,
    )
    if engine is not None:
        app.state.engine = engine

    origins = [o.strip() for o in settings.allowed_origins.split(",") if o.strip()] if settings.allowed_origins else ["*"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health.router)
    app.include_router(command.router, prefix="/command", tags=["command"])
    app.include_router(plugins.router, prefix="/plugins", tags=["plugins"])
    return app


app = create_app()
