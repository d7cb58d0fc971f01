from datetime import datetime, timezone

import sqlalchemy as sa
import uvicorn
from fastapi import Depends, FastAPI, HTTPException
from fastapi.openapi.utils import get_openapi

from feedstream.database.database import SessionScope
from feedstream.main.config import get_settings
from feedstream.main.container.container import Container
from feedstream.main.exceptions import StoreUnavailableError
from feedstream.main.logging import get_logger
from feedstream.main.models import ComponentHealth
from feedstream.server import api_documentation
from feedstream.server.dependencies.container import get_container
from feedstream.server.dependencies.lifespan import lifespan
from feedstream.server.exception_handlers import add_exception_handlers
from feedstream.server.middleware.request_context import RequestContextMiddleware
from feedstream.server.routers import router as api_router
from feedstream.worker.health import get_worker_health

logger = get_logger(__name__)


async def get_store_health(session_scope: SessionScope) -> ComponentHealth:
    checked_at = datetime.now(timezone.utc).isoformat()
    try:
        async with session_scope() as session:
            await session.execute(sa.text("SELECT 1"))
    except StoreUnavailableError as exc:
        return ComponentHealth("UNHEALTHY", None, f"Feed store unreachable: {exc}")

    return ComponentHealth("HEALTHY", checked_at, "Feed store reachable")


def get_application(with_lifespan: bool = True):
    app = FastAPI(lifespan=lifespan if with_lifespan else None)

    app.add_middleware(RequestContextMiddleware)

    app.include_router(api_router, prefix=get_settings().api_prefix)

    # Handlers for the mapped feed errors; anything else is a plain 500
    add_exception_handlers(app)

    def custom_openapi():
        if app.openapi_schema:
            return app.openapi_schema

        app.openapi_schema = get_openapi(
            title=api_documentation.TITLE,
            version=get_settings().app_version,
            description=api_documentation.SUMMARY,
            tags=api_documentation.TAGS_METADATA,
            routes=app.routes,
        )
        return app.openapi_schema

    app.openapi = custom_openapi

    @app.get("/api/healthz")
    async def get_healthz(container: Container = Depends(get_container)):
        now = datetime.now(timezone.utc).isoformat()
        components = {
            # The api is healthy if it can answer at all
            "backend": ComponentHealth("HEALTHY", now, "Backend API server operational"),
            "store": await get_store_health(container.session_scope()),
            "worker": await get_worker_health(),
        }
        healthy = all(component.status == "HEALTHY" for component in components.values())

        detail = {
            "status": "HEALTHY" if healthy else "UNHEALTHY",
            "timestamp": now,
            **{name: component._asdict() for name, component in components.items()},
        }

        if not healthy:
            logger.warning(
                "Health check failed",
                extra={name: component.status for name, component in components.items()},
            )
            raise HTTPException(status_code=503, detail=detail)

        return {"detail": detail}

    @app.get("/version")
    async def get_version():
        return {"version": get_settings().app_version}

    return app


def start():
    uvicorn.run(
        "feedstream.server.main:get_application",
        factory=True,
        host="0.0.0.0",
        port=8123,
    )
