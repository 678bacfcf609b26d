"""Schedule modes and the values passed between location and sun lookups."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional


class ScheduleMode(Enum):
    """How the location used for scheduling is acquired."""

    MANUAL = "manual"
    AUTOMATIC_ONCE = "automatic_once"
    AUTOMATIC_CONTINUOUS = "automatic_continuous"

    @property
    def is_automatic(self) -> bool:
        return self is not ScheduleMode.MANUAL


@dataclass(frozen=True)
class GeoPosition:
    """A latitude/longitude pair, optionally with the IANA timezone it lies in."""

    latitude: float
    longitude: float
    timezone: Optional[str] = None

    def __str__(self) -> str:
        return f"{self.latitude:.4f}, {self.longitude:.4f}"


@dataclass(frozen=True)
class ToggleTransition:
    """The next scheduled toggle: at `timestamp`, dark mode becomes `dark`."""

    timestamp: datetime
    dark: bool

    def __str__(self) -> str:
        state = "on" if self.dark else "off"
        return f"dark mode {state} at {self.timestamp.strftime('%Y-%m-%d %H:%M:%S %Z')}"
