"""
Plantwatch — Prometheus Metrics

Exposes /metrics endpoint for observability.
Tracks poll cycles, per-channel fetch outcomes, cycle latency and
powered-off devices.
"""
from prometheus_client import (
    Counter, Histogram, Gauge, Info,
    generate_latest, CONTENT_TYPE_LATEST
)
from fastapi import APIRouter, Response


router = APIRouter()

# ═══════════════════════════════════════════════════════════
# COUNTERS
# ═══════════════════════════════════════════════════════════

poll_cycles = Counter(
    "plantwatch_poll_cycles_total",
    "Poll cycles by group and outcome",
    ["group", "outcome"]
)

channel_fetches = Counter(
    "plantwatch_channel_fetches_total",
    "Channel fetches by group and outcome",
    ["group", "outcome"]
)

api_requests = Counter(
    "plantwatch_api_requests_total",
    "Total API requests",
    ["method", "path", "status"]
)

logins = Counter(
    "plantwatch_logins_total",
    "Login attempts by outcome",
    ["outcome"]
)

# ═══════════════════════════════════════════════════════════
# HISTOGRAMS
# ═══════════════════════════════════════════════════════════

cycle_latency = Histogram(
    "plantwatch_poll_cycle_latency_seconds",
    "Wall time of one group poll cycle",
    ["group"],
    buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 15.0, 30.0]
)

api_request_latency = Histogram(
    "plantwatch_api_latency_seconds",
    "API latency",
    ["method", "path"],
    buckets=[.01, .05, .1, .25, .5, 1, 2.5]
)

# ═══════════════════════════════════════════════════════════
# GAUGES
# ═══════════════════════════════════════════════════════════

devices_tracked = Gauge(
    "plantwatch_devices_tracked",
    "Devices with at least one successful sample",
    ["group"]
)

devices_powered_off = Gauge(
    "plantwatch_devices_powered_off",
    "Devices currently inferred as powered off",
    ["group"]
)

# ═══════════════════════════════════════════════════════════
# INFO
# ═══════════════════════════════════════════════════════════

build_info = Info(
    "plantwatch_build",
    "Build information"
)
build_info.info({
    "version": "1.0.0",
    "service": "api",
})


# ═══════════════════════════════════════════════════════════
# METRICS ENDPOINT
# ═══════════════════════════════════════════════════════════

@router.get("/metrics")
async def metrics():
    """Prometheus metrics endpoint."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST,
    )
