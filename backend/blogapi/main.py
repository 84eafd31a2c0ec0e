import logging
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from blogapi.api.routes import auth as auth_routes
from blogapi.api.routes import health as health_routes
from blogapi.api.routes import metrics as metrics_routes
from blogapi.api.routes import security_devices as security_devices_routes
from blogapi.api.routes import testing as testing_routes
from blogapi.api.routes import users as users_routes
from blogapi.container import AuthRuntime
from blogapi.core.config import Settings, get_settings
from blogapi.core.errors import register_exception_handlers
from blogapi.core.tracing import init_tracing
from blogapi.db.base import Base
from blogapi.db.migrations import run_migrations_on_startup
from blogapi.db.session import engine_for
import blogapi.models  # noqa: F401  registers tables on Base.metadata


def create_app(settings: Optional[Settings] = None, runtime: Optional[AuthRuntime] = None) -> FastAPI:
    settings = settings or get_settings()
    app = FastAPI(title=settings.app_name)
    app.state.runtime = runtime or AuthRuntime(settings)

    @app.on_event("startup")
    def _startup_migrations() -> None:
        run_migrations_on_startup(settings)

    init_tracing(app, settings)

    origins = [o.strip() for o in settings.backend_cors_origins.split(",") if o.strip()]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)

    prefix = settings.api_prefix
    app.include_router(health_routes.router, prefix=prefix)
    app.include_router(metrics_routes.router, prefix=prefix)
    app.include_router(auth_routes.router, prefix=prefix)
    app.include_router(security_devices_routes.router, prefix=prefix)
    app.include_router(users_routes.router, prefix=prefix)
    if settings.environment != "production":
        app.include_router(testing_routes.router, prefix=prefix)

    if settings.environment != "production":
        try:
            Base.metadata.create_all(bind=engine_for(settings))
        except Exception:
            logging.getLogger("blog.migrations").warning("Could not create tables", exc_info=True)

    return app


app = create_app()
