"""
Plantwatch — Device Registry

In-memory, per channel group. The positional index is the only key;
the default name ("Device N") is derived from it and display names never
enter the registry. No eviction: a device that stops reporting keeps its
last state for the life of the process.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from models import DeviceState, Movement, Sample
from status import Derivation, DeviceStatus


def default_name(index: int) -> str:
    return f"Device {index + 1}"


@dataclass
class DeviceEntry:
    index: int
    channel_id: str
    status: DeviceStatus = field(default_factory=DeviceStatus)
    movement: Movement = Movement.NONE
    temperature: Optional[str] = None
    x: Optional[float] = None
    y: Optional[float] = None
    consecutive_failures: int = 0
    sampled_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def default_name(self) -> str:
        return default_name(self.index)

    @property
    def has_point(self) -> bool:
        return self.x is not None and self.y is not None

    def to_state(self) -> DeviceState:
        return DeviceState(
            index=self.index,
            default_name=self.default_name,
            channel_id=self.channel_id,
            last_temperature=self.status.last_temperature,
            repeat_count=self.status.repeat_count,
            powered_off=self.status.powered_off,
            movement=self.movement,
            x=self.x,
            y=self.y,
            consecutive_failures=self.consecutive_failures,
            sampled_at=self.sampled_at,
            updated_at=self.updated_at,
        )


class DeviceRegistry:
    """Latest derived state for every device of one group that has reported."""

    def __init__(self, group: str):
        self.group = group
        self._entries: dict[int, DeviceEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, index: int) -> bool:
        return index in self._entries

    def get(self, index: int) -> Optional[DeviceEntry]:
        return self._entries.get(index)

    def by_name(self, name: str) -> Optional[DeviceEntry]:
        for entry in self._entries.values():
            if entry.default_name == name:
                return entry
        return None

    def status_for(self, index: int) -> Optional[DeviceStatus]:
        entry = self._entries.get(index)
        return entry.status if entry else None

    def apply(self, derivation: Derivation, sample: Sample, now: Optional[datetime] = None) -> DeviceEntry:
        """Upsert the entry for a successfully derived sample."""
        now = now or datetime.now(timezone.utc)
        entry = self._entries.get(derivation.index)
        if entry is None:
            entry = DeviceEntry(index=derivation.index, channel_id=sample.channel_id)
            self._entries[derivation.index] = entry

        entry.channel_id = sample.channel_id
        entry.status = derivation.status
        entry.movement = derivation.movement
        entry.temperature = derivation.temperature
        entry.x = sample.x
        entry.y = sample.y
        entry.consecutive_failures = 0
        entry.sampled_at = sample.created_at
        entry.updated_at = now
        return entry

    def record_failure(self, index: int) -> None:
        """Count a missed poll; status and plot point stay as they were."""
        entry = self._entries.get(index)
        if entry is not None:
            entry.consecutive_failures += 1

    def entries(self) -> list[DeviceEntry]:
        return [self._entries[i] for i in sorted(self._entries)]

    def powered_off_count(self) -> int:
        return sum(1 for e in self._entries.values() if e.status.powered_off)
