"""
Plantwatch — FastAPI Backend

Polls ThingSpeak channel groups on a timer, derives movement and
powered-off status per device, and serves the dashboard:
- poll loop   → asyncio task owned by the lifespan handler
- state       → Dashboard (one in-memory registry per group)
- session     → signed cookie; login flag and display-name overrides
"""
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import RedirectResponse
from starlette.middleware.sessions import SessionMiddleware

from config import settings
from log import get_logger
from metrics import api_requests, api_request_latency, router as metrics_router
from poller import Dashboard

logger = get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup — start the poll loop; shutdown — cancel it and any in-flight cycles."""
    dashboard: Dashboard = app.state.dashboard
    logger.info(
        "plantwatch.starting",
        env=settings.APP_ENV,
        groups=list(dashboard.groups),
        poll_enabled=settings.POLL_ENABLED,
    )
    if settings.POLL_ENABLED:
        dashboard.start()
    yield
    await dashboard.stop()
    logger.info("plantwatch.shutdown")


app = FastAPI(
    title="Plantwatch — Device Telemetry Dashboard",
    description="ThingSpeak channel groups → movement and powered-off status → dashboard",
    version="1.0.0",
    lifespan=lifespan,
)
app.state.dashboard = Dashboard(settings)


@app.middleware("http")
async def track_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    dur = time.perf_counter() - start
    route = request.scope.get("route")
    path = getattr(route, "path", request.url.path)
    if not path.startswith(("/docs", "/openapi", "/redoc", "/metrics")):
        api_requests.labels(method=request.method, path=path, status=str(response.status_code)).inc()
        api_request_latency.labels(method=request.method, path=path).observe(dur)
    return response


app.add_middleware(
    SessionMiddleware,
    secret_key=settings.SESSION_SECRET,
    session_cookie="plantwatch_session",
    same_site="lax",
)


# ═══════════════════════════════════════════════════════════
# ENDPOINTS
# ═══════════════════════════════════════════════════════════

@app.get("/", include_in_schema=False)
async def root():
    return RedirectResponse(url="/ui")


# ═══════════════════════════════════════════════════════════
# ROUTERS
# ═══════════════════════════════════════════════════════════

from routers import devices, health, login, ui

app.include_router(ui.router, tags=["UI"])
app.include_router(login.router, tags=["Session"])
app.include_router(health.router, tags=["Health"])
app.include_router(metrics_router, tags=["Metrics"])
app.include_router(devices.router, prefix="/api/v1/groups", tags=["Devices"])
