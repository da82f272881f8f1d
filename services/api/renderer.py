"""
Plantwatch — View Renderer

Builds the render-ready view of one group from registry state plus the
caller's display names. Pure and idempotent: the same registry and names
always give the same cards, points and legend. The browser applies the
view to the DOM (create card once, update in place) and to Chart.js.
"""
from datetime import datetime
from typing import Iterable, Optional

from config import Settings
from models import (
    DashboardView, DeviceCard, LegendItem, Movement, PlotAxes, PlotPoint,
)
from registry import DeviceEntry, DeviceRegistry, default_name


SHAPES = ["circle", "triangle", "rect", "cross", "star", "line", "dash"]

STATUS_COLORS = {
    Movement.NONE: "red",
    Movement.WARNING: "orange",
    Movement.DETECTED: "green",
}

POWERED_OFF_TEXT = "Device Powered Off"


def group_title(group: str) -> str:
    return f"{group[:1].upper()}{group[1:]} Devices"


def collect_names(values: Iterable[Optional[str]]) -> list[str]:
    """Rename form values in order; blank entries fall back to Device N."""
    names: list[str] = []
    for value in values:
        value = (value or "").strip()
        names.append(value or default_name(len(names)))
    return names


def display_name(names: list[str], index: int) -> str:
    if index < len(names) and names[index]:
        return names[index]
    return default_name(index)


def status_color(movement: Movement) -> str:
    return STATUS_COLORS.get(movement, "red")


def point_style(index: int) -> str:
    return SHAPES[index % len(SHAPES)]


def render_card(entry: DeviceEntry, name: str) -> DeviceCard:
    if entry.status.powered_off:
        temperature_text = POWERED_OFF_TEXT
        movement_text = ""
    else:
        temperature_text = f"Temperature: {entry.temperature}°C"
        movement_text = f"Movement: {entry.movement.label}"

    return DeviceCard(
        index=entry.index,
        name=name,
        light=status_color(entry.movement),
        temperature_text=temperature_text,
        movement_text=movement_text,
        powered_off=entry.status.powered_off,
    )


def render_plot(entries: list[DeviceEntry], names: list[str]) -> tuple[list[PlotPoint], list[LegendItem]]:
    """Scatter points and legend, one per device with coordinates."""
    points: list[PlotPoint] = []
    legend: list[LegendItem] = []
    for entry in entries:
        if not entry.has_point:
            continue
        label = display_name(names, entry.index)
        color = status_color(entry.movement)
        style = point_style(entry.index)
        points.append(PlotPoint(
            x=entry.x,
            y=entry.y,
            isMoving=int(entry.movement),
            label=label,
            color=color,
            pointStyle=style,
        ))
        legend.append(LegendItem(text=label, fillStyle=color, strokeStyle=color, pointStyle=style))
    return points, legend


def render_view(
    group: str,
    registry: DeviceRegistry,
    names: list[str],
    settings: Settings,
    known_group: bool = True,
    last_cycle_at: Optional[datetime] = None,
) -> DashboardView:
    entries = registry.entries()
    points, legend = render_plot(entries, names)
    return DashboardView(
        group=group,
        title=group_title(group),
        known_group=known_group,
        cards=[render_card(e, display_name(names, e.index)) for e in entries],
        points=points,
        legend=legend,
        axes=PlotAxes(
            x_min=settings.PLOT_X_MIN,
            x_max=settings.PLOT_X_MAX,
            y_min=settings.PLOT_Y_MIN,
            y_max=settings.PLOT_Y_MAX,
        ),
        names=names,
        last_cycle_at=last_cycle_at,
    )
