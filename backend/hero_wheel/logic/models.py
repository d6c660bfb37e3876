"""Wheel spin models."""
from enum import Enum

from pydantic import BaseModel


class WheelStatus(str, Enum):
    """Wheel lifecycle: IDLE -> SPINNING -> IDLE."""
    IDLE = "IDLE"
    SPINNING = "SPINNING"


class SpinAdmission(str, Enum):
    """Result of asking the wheel to start a spin."""
    STARTED = "STARTED"
    BUSY = "BUSY"
    DISABLED = "DISABLED"


class SpinPlan(BaseModel):
    """
    Committed spin parameters.

    target_angle = start_angle + full_rotations * 2pi + random_offset
    """
    start_angle: float
    target_angle: float
    full_rotations: float
    random_offset: float
    start_time_ms: float
    duration_ms: float

    @property
    def end_time_ms(self) -> float:
        return self.start_time_ms + self.duration_ms


class SpinOutcome(BaseModel):
    """Outcome emitted once per completed spin."""
    index: int
    label: str
    final_angle: float
    plan: SpinPlan


class FrameUpdate(BaseModel):
    """Wheel angle after one animation tick."""
    angle: float
    progress: float
    outcome: SpinOutcome | None = None
