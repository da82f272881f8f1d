"""
Plantwatch — Health Check Router
"""
import time
from datetime import datetime, timezone

from fastapi import APIRouter, Request

router = APIRouter()

_start_time = time.time()


@router.get("/health")
async def health_check(request: Request):
    """Health check endpoint for monitoring."""
    dashboard = request.app.state.dashboard
    return {
        "status": "healthy",
        "service": dashboard.settings.APP_NAME,
        "version": "1.0.0",
        "uptime_s": round(time.time() - _start_time, 1),
        "poller": {
            "running": dashboard.running,
            "interval_s": dashboard.settings.POLL_INTERVAL_S,
            "cycles_completed": dashboard.cycles_completed,
            "cycles_skipped": dashboard.cycles_skipped,
            "groups": {
                group: {
                    "channels": len(channels),
                    "tracked": len(dashboard.registry(group)),
                    "last_cycle_at": dashboard.last_cycle_at.get(group),
                }
                for group, channels in dashboard.groups.items()
            },
        },
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
