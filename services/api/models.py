"""
Plantwatch — Pydantic Models

Sample:        one feed entry read from a telemetry channel
DeviceState:   registry view of a device (status history + last plot point)
DashboardView: render-ready cards, scatter dataset and legend for one group
"""
from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field


# ═══════════════════════════════════════════════════════════
# ENUMS
# ═══════════════════════════════════════════════════════════

class Movement(int, Enum):
    NONE = 0
    WARNING = 1
    DETECTED = 2

    @property
    def label(self) -> str:
        return MOVEMENT_LABELS[self]


MOVEMENT_LABELS = {
    Movement.NONE: "No Movement",
    Movement.WARNING: "Warning",
    Movement.DETECTED: "Movement Detected",
}


class FetchOutcome(str, Enum):
    OK = "ok"
    FAILED = "failed"
    EMPTY = "empty"


# ═══════════════════════════════════════════════════════════
# TELEMETRY
# ═══════════════════════════════════════════════════════════

class Sample(BaseModel):
    """Latest reading of one channel as decoded from its feed."""
    index: int = Field(..., ge=0)
    channel_id: str
    temperature: float
    movement_code: Optional[str] = None
    x: Optional[float] = None
    y: Optional[float] = None
    entry_id: Optional[int] = None
    created_at: Optional[datetime] = None


class ChannelResult(BaseModel):
    """Per-channel result of one poll cycle."""
    index: int
    channel_id: str
    outcome: FetchOutcome
    sample: Optional[Sample] = None
    error: Optional[str] = None


class CycleSummary(BaseModel):
    group: str
    skipped: bool = False
    channels: int = 0
    updated: list[int] = Field(default_factory=list)
    failed: list[int] = Field(default_factory=list)
    empty: list[int] = Field(default_factory=list)
    finished_at: Optional[datetime] = None


# ═══════════════════════════════════════════════════════════
# REGISTRY
# ═══════════════════════════════════════════════════════════

class DeviceState(BaseModel):
    index: int
    default_name: str
    channel_id: str
    last_temperature: Optional[str] = None
    repeat_count: int = 0
    powered_off: bool = False
    movement: Movement = Movement.NONE
    x: Optional[float] = None
    y: Optional[float] = None
    consecutive_failures: int = 0
    sampled_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class GroupSummary(BaseModel):
    key: str
    title: str
    channels: list[str]


# ═══════════════════════════════════════════════════════════
# VIEW
# ═══════════════════════════════════════════════════════════

class DeviceCard(BaseModel):
    index: int
    name: str
    light: str                   # red | orange | green
    temperature_text: str
    movement_text: str
    powered_off: bool = False


class PlotPoint(BaseModel):
    x: float
    y: float
    isMoving: int
    label: str
    color: str
    pointStyle: str


class LegendItem(BaseModel):
    text: str
    fillStyle: str
    strokeStyle: str
    pointStyle: str
    datasetIndex: int = 0        # single "Devices" dataset


class PlotAxes(BaseModel):
    x_min: float
    x_max: float
    y_min: float
    y_max: float


class DashboardView(BaseModel):
    group: str
    title: str
    known_group: bool
    cards: list[DeviceCard] = Field(default_factory=list)
    points: list[PlotPoint] = Field(default_factory=list)
    legend: list[LegendItem] = Field(default_factory=list)
    axes: PlotAxes
    names: list[str] = Field(default_factory=list)
    last_cycle_at: Optional[datetime] = None
