"""
Plantwatch — Device Groups Router
Rendered views, raw registry state and the rename form per group
"""
from fastapi import APIRouter, Depends, Request

from auth import require_login
from log import get_logger
from models import DashboardView, GroupSummary
from poller import Dashboard
from renderer import collect_names, render_view

logger = get_logger()
router = APIRouter(dependencies=[Depends(require_login)])

# Display-name overrides per group, kept in the caller's session only
NAMES_KEY = "device_names"


def get_dashboard(request: Request) -> Dashboard:
    return request.app.state.dashboard


def session_names(request: Request, group: str) -> list[str]:
    names = request.session.get(NAMES_KEY, {}).get(group, [])
    if not isinstance(names, list):
        return []
    return [str(n) for n in names]


def store_names(request: Request, group: str, names: list[str]) -> None:
    overrides = dict(request.session.get(NAMES_KEY, {}))
    overrides[group] = names
    request.session[NAMES_KEY] = overrides


def build_view(request: Request, dashboard: Dashboard, group: str) -> DashboardView:
    return render_view(
        group=group,
        registry=dashboard.registry(group),
        names=session_names(request, group),
        settings=dashboard.settings,
        known_group=dashboard.is_known(group),
        last_cycle_at=dashboard.last_cycle_at.get(group),
    )


@router.get("", response_model=list[GroupSummary])
async def list_groups(dashboard: Dashboard = Depends(get_dashboard)):
    """Configured channel groups."""
    return dashboard.summaries()


@router.get("/{permit}/view", response_model=DashboardView)
async def group_view(permit: str, request: Request, dashboard: Dashboard = Depends(get_dashboard)):
    """Cards, scatter points and legend for one group."""
    return build_view(request, dashboard, permit)


@router.get("/{permit}/devices")
async def group_devices(permit: str, dashboard: Dashboard = Depends(get_dashboard)):
    """Raw registry state, keyed by positional index."""
    registry = dashboard.registry(permit)
    return {
        "group": permit,
        "known_group": dashboard.is_known(permit),
        "in_flight": dashboard.in_flight(permit),
        "devices": [e.to_state() for e in registry.entries()],
        "last_cycle_at": dashboard.last_cycle_at.get(permit),
    }


@router.post("/{permit}/names", response_model=DashboardView)
async def rename_devices(permit: str, request: Request, dashboard: Dashboard = Depends(get_dashboard)):
    """Apply the rename form; re-fetch the group unless it was polled within the last interval."""
    form = await request.form()
    names = collect_names(v for _, v in form.multi_items() if isinstance(v, str))

    if dashboard.is_known(permit):
        store_names(request, permit, names)
        logger.info("devices.renamed", group=permit, names=names)
        await dashboard.refresh_if_stale(permit)

    return build_view(request, dashboard, permit)

