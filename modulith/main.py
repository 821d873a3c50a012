"""FastAPI application entrypoint.

Mounts the users and orders modules, a ``/health`` endpoint reporting the
weather feed's circuit breaker, request-ID middleware, and a handler that
turns ``ModulithError`` into a ``StructuredErrorResponse``.

Run with ``uvicorn modulith.main:app``.
"""

import logging
import time
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse

from modulith.clients.weather import WeatherClient, build_weather_client
from modulith.core.config import Settings
from modulith.core.errors import ModulithError, ServiceCallError, StructuredErrorResponse, UserNotFoundError
from modulith.models.schemas import HealthResponse
from modulith.modules import orders, users

logger = logging.getLogger(__name__)


def _status_for(exc: ModulithError) -> int:
    if isinstance(exc, UserNotFoundError):
        return 400
    if isinstance(exc, ServiceCallError):
        return 502
    return 500


def create_app(settings: Settings | None = None, *, weather: WeatherClient | None = None) -> FastAPI:
    """Build the application with its own stores and weather client."""
    settings = settings or Settings()
    weather = weather or build_weather_client(settings)
    start_time = time.monotonic()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        await weather.close()

    app = FastAPI(
        title=settings.SERVICE_NAME,
        version=settings.SERVICE_VERSION,
        lifespan=lifespan,
    )
    app.state.users = users.UserStore()
    app.state.orders = orders.OrderService(
        app.state.users,
        weather,
        weather_city=settings.ORDER_WEATHER_CITY,
    )
    app.state.weather = weather

    @app.middleware("http")
    async def request_id_middleware(request: Request, call_next) -> Response:
        """Assign or preserve a unique request ID on every request."""
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response

    @app.exception_handler(ModulithError)
    async def modulith_error_handler(request: Request, exc: ModulithError) -> JSONResponse:
        request_id = getattr(request.state, "request_id", "") or str(uuid.uuid4())
        body = StructuredErrorResponse.from_exception(exc, request_id)
        logger.warning("%s %s failed: %s", request.method, request.url.path, exc)
        return JSONResponse(
            status_code=_status_for(exc),
            content=body.model_dump(),
            headers={"X-Request-ID": request_id},
        )

    @app.get("/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        """Return service health with name, version, uptime and breaker state."""
        return HealthResponse(
            service=settings.SERVICE_NAME,
            version=settings.SERVICE_VERSION,
            status="healthy",
            uptime_seconds=round(time.monotonic() - start_time, 2),
            circuits=[weather.policy.breaker.snapshot()],
        )

    app.include_router(users.router)
    app.include_router(orders.router)
    return app


app = create_app()
