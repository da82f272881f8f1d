"""
Plantwatch — Status Deriver

Turns a raw Sample plus the device's previous status into:
1. Movement classification (field2 code → No Movement / Warning / Movement Detected)
2. Powered-off inference (same 2-decimal temperature N polls in a row)

Unknown movement codes fail open to No Movement. A device seen for the
first time is never powered off.
"""
from dataclasses import dataclass, replace
from typing import Any, Optional

from models import Movement, Sample


MOVEMENT_CODES = {
    "0": Movement.NONE,
    "1": Movement.WARNING,
    "2": Movement.DETECTED,
}

DEFAULT_REPEAT_THRESHOLD = 3


@dataclass(frozen=True)
class DeviceStatus:
    """Temperature history used for the powered-off heuristic."""
    last_temperature: Optional[str] = None
    repeat_count: int = 0
    powered_off: bool = False


@dataclass(frozen=True)
class Derivation:
    """Result of one derivation step, ready for the registry and renderer."""
    index: int
    status: DeviceStatus
    movement: Movement
    temperature: str
    powered_off: bool


def classify_movement(code: Any) -> Movement:
    """Exact string match on "0", "1", "2"; anything else is No Movement."""
    if not isinstance(code, str):
        return Movement.NONE
    return MOVEMENT_CODES.get(code, Movement.NONE)


def normalize_temperature(value: float) -> str:
    return f"{value:.2f}"


def next_status(
    temperature: str,
    previous: Optional[DeviceStatus],
    threshold: int = DEFAULT_REPEAT_THRESHOLD,
) -> DeviceStatus:
    """
    Advance the repeat counter for one successful reading.

    Equal to the stored temperature: counter + 1, powered off once it reaches
    the threshold (and for every repeat after). Different, or no history:
    store the new temperature and reset.
    """
    if previous is not None and previous.last_temperature == temperature:
        count = previous.repeat_count + 1
        return replace(previous, repeat_count=count, powered_off=count >= threshold)
    return DeviceStatus(last_temperature=temperature, repeat_count=0, powered_off=False)


def derive_status(
    sample: Sample,
    previous: Optional[DeviceStatus],
    threshold: int = DEFAULT_REPEAT_THRESHOLD,
) -> Derivation:
    temperature = normalize_temperature(sample.temperature)
    status = next_status(temperature, previous, threshold)
    return Derivation(
        index=sample.index,
        status=status,
        movement=classify_movement(sample.movement_code),
        temperature=temperature,
        powered_off=status.powered_off,
    )
