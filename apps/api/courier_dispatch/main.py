import time
from contextlib import asynccontextmanager
from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.openapi.utils import get_openapi
from fastapi.responses import Response

from courier_dispatch import __version__
from courier_dispatch.config import allowed_origins, ensure_secure_runtime_settings, settings
from courier_dispatch.db.migration_check import prepare_schema
from courier_dispatch.db.session import engine
from courier_dispatch.dependencies import get_dispatch_engine
from courier_dispatch.observability import configure_logging, log_event, metrics_store, set_request_id
from courier_dispatch.routers.couriers import router as couriers_router
from courier_dispatch.routers.debt import router as debt_router
from courier_dispatch.routers.health import router as health_router
from courier_dispatch.routers.metrics import router as metrics_router
from courier_dispatch.routers.orders import router as orders_router
from courier_dispatch.routers.settlements import router as settlements_router


@asynccontextmanager
async def lifespan(app_: FastAPI):
    import courier_dispatch.models  # noqa: F401 (register all SQLAlchemy models)

    if not settings.testing:
        configure_logging()
    ensure_secure_runtime_settings()
    prepare_schema(engine)
    log_event(f"startup:{settings.app_mode}")
    yield

    dispatch_engine = app_.dependency_overrides.get(get_dispatch_engine, get_dispatch_engine)()
    await dispatch_engine.shutdown()


app = FastAPI(
    title=settings.app_name,
    version=__version__,
    description="Courier matching, order lifecycle and settlement API",
    lifespan=lifespan,
)


def custom_openapi():
    """Advertise bearer auth so Swagger UI sends the Authorization header."""
    if app.openapi_schema:
        return app.openapi_schema

    openapi_schema = get_openapi(
        title=app.title,
        version=app.version,
        description=app.description,
        routes=app.routes,
    )
    components = openapi_schema.setdefault("components", {})
    components.setdefault("securitySchemes", {})["BearerAuth"] = {
        "type": "http",
        "scheme": "bearer",
        "bearerFormat": "JWT",
    }
    openapi_schema["security"] = [{"BearerAuth": []}]

    app.openapi_schema = openapi_schema
    return app.openapi_schema


app.openapi = custom_openapi

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def request_context_middleware(request: Request, call_next) -> Response:
    request_id = request.headers.get("X-Request-ID") or str(uuid4())
    set_request_id(request_id)

    start = time.perf_counter()
    response = await call_next(request)
    elapsed = time.perf_counter() - start

    response.headers["X-Request-ID"] = request_id
    metrics_store.increment("http_requests_total")
    metrics_store.observe("http_request_duration_seconds", elapsed)
    log_event(
        f"http_request:{request.method} {request.url.path} {response.status_code}",
        order_id=request.path_params.get("order_id"),
        courier_id=request.path_params.get("courier_id"),
    )
    return response


app.include_router(health_router)
app.include_router(orders_router)
app.include_router(couriers_router)
app.include_router(settlements_router)
app.include_router(debt_router)
app.include_router(metrics_router)
