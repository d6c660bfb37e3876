"""Spinning wheel: randomized spin plan, eased animation and outcome decoding.

The pointer sits at the wheel's zero angle (3 o'clock on a canvas, where
segment 0 starts) and segments are laid out clockwise from there. Rotating
the wheel by `angle` moves the segment under the pointer backwards, so the
pointer's position in the unrotated wheel frame is `2pi - angle`. Moving the
pointer on screen requires changing `decode_outcome_index` with it.
"""
import math
from collections.abc import Callable, Iterator, Sequence

from hero_wheel.logic.models import (
    FrameUpdate,
    SpinAdmission,
    SpinOutcome,
    SpinPlan,
    WheelStatus,
)
from hero_wheel.logic.rng import ProductionRNG, RNGBase


TWO_PI = 2 * math.pi

# Spin plan ranges, all half-open [min, max)
MIN_FULL_ROTATIONS = 5.0
MAX_FULL_ROTATIONS = 10.0
MIN_DURATION_MS = 4000.0
MAX_DURATION_MS = 6000.0

DEFAULT_FRAME_MS = 1000.0 / 60.0


def segment_angle(segment_count: int) -> float:
    """Angular width of one segment."""
    if segment_count <= 0:
        raise ValueError("segment_count must be positive")
    return TWO_PI / segment_count


def ease_out_cubic(progress: float) -> float:
    """Cubic ease-out: f(0)=0, f(1)=1, f'(1)=0. Input is clamped to [0, 1]."""
    p = min(max(progress, 0.0), 1.0)
    return 1 - (1 - p) ** 3


def normalize_angle(angle: float) -> float:
    """Map any finite angle into [0, 2pi)."""
    if not math.isfinite(angle):
        raise ValueError(f"Angle must be finite, got {angle}")
    return angle % TWO_PI


def decode_outcome_index(angle: float, segment_count: int) -> int:
    """
    Index of the segment under the pointer for a resting wheel angle.

    Pure function of (angle, segment_count); always in [0, segment_count - 1].
    """
    width = segment_angle(segment_count)
    normalized = normalize_angle(angle)
    pointer_angle = (TWO_PI - normalized) % TWO_PI
    return int(math.floor(pointer_angle / width)) % segment_count


class SpinWheel:
    """
    Wheel state machine driven by an external clock.

    The host calls `spin(now_ms)` to commit a spin and `tick(now_ms)` once per
    frame. The outcome is decoded from the final angle only and emitted exactly
    once, from the tick that reaches progress 1.0.
    """

    def __init__(
        self,
        outcomes: Sequence[str],
        rng: RNGBase | None = None,
        angle: float = 0.0,
        on_complete: Callable[[SpinOutcome], None] | None = None,
        min_rotations: float = MIN_FULL_ROTATIONS,
        max_rotations: float = MAX_FULL_ROTATIONS,
        min_duration_ms: float = MIN_DURATION_MS,
        max_duration_ms: float = MAX_DURATION_MS,
    ):
        if len(outcomes) == 0:
            raise ValueError("Wheel needs at least one outcome")
        self.outcomes = tuple(outcomes)
        self.rng = rng or ProductionRNG()
        self.on_complete = on_complete
        self.min_rotations = min_rotations
        self.max_rotations = max_rotations
        self.min_duration_ms = min_duration_ms
        self.max_duration_ms = max_duration_ms
        self.disabled = False
        self._angle = float(angle)
        self._plan: SpinPlan | None = None

    @property
    def angle(self) -> float:
        return self._angle

    @property
    def plan(self) -> SpinPlan | None:
        return self._plan

    @property
    def status(self) -> WheelStatus:
        return WheelStatus.SPINNING if self._plan is not None else WheelStatus.IDLE

    @property
    def is_spinning(self) -> bool:
        return self._plan is not None

    @property
    def segment_angle(self) -> float:
        return segment_angle(len(self.outcomes))

    def outcome_at(self, angle: float) -> tuple[int, str]:
        """Decode a resting angle into (index, label)."""
        index = decode_outcome_index(angle, len(self.outcomes))
        return index, self.outcomes[index]

    def spin(self, now_ms: float) -> SpinAdmission:
        """
        Commit a new spin starting at `now_ms`.

        Disabled takes precedence over busy. Rejected requests leave the wheel
        untouched.
        """
        if self.disabled:
            return SpinAdmission.DISABLED
        if self._plan is not None:
            return SpinAdmission.BUSY

        full_rotations = self.rng.uniform(self.min_rotations, self.max_rotations)
        random_offset = self.rng.uniform(0.0, TWO_PI)
        duration_ms = self.rng.uniform(self.min_duration_ms, self.max_duration_ms)

        self._plan = SpinPlan(
            start_angle=self._angle,
            target_angle=self._angle + full_rotations * TWO_PI + random_offset,
            full_rotations=full_rotations,
            random_offset=random_offset,
            start_time_ms=now_ms,
            duration_ms=duration_ms,
        )
        return SpinAdmission.STARTED

    def tick(self, now_ms: float) -> FrameUpdate | None:
        """
        Advance the animation to `now_ms`.

        Returns None while idle. The update that completes the spin carries the
        outcome; the wheel is idle again afterwards.
        """
        plan = self._plan
        if plan is None:
            return None

        if plan.duration_ms <= 0 or now_ms >= plan.end_time_ms:
            progress = 1.0
        else:
            progress = min(max((now_ms - plan.start_time_ms) / plan.duration_ms, 0.0), 1.0)
        eased = ease_out_cubic(progress)
        self._angle = plan.start_angle + (plan.target_angle - plan.start_angle) * eased

        if progress < 1.0:
            return FrameUpdate(angle=self._angle, progress=progress)

        self._plan = None
        index, label = self.outcome_at(self._angle)
        outcome = SpinOutcome(index=index, label=label, final_angle=self._angle, plan=plan)
        if self.on_complete is not None:
            self.on_complete(outcome)
        return FrameUpdate(angle=self._angle, progress=progress, outcome=outcome)

    def resume(self, plan: SpinPlan) -> None:
        """
        Re-attach a committed spin, e.g. one a client is still animating.

        The wheel is busy until a tick reaches the plan's end time.
        """
        if self._plan is not None:
            raise RuntimeError("Wheel is already spinning")
        self._plan = plan

    def cancel(self) -> None:
        """Abandon an in-flight spin (host torn down). No outcome is emitted."""
        self._plan = None

    def frames(self, frame_ms: float = DEFAULT_FRAME_MS) -> Iterator[FrameUpdate]:
        """Yield frame updates on a synthetic clock until the spin completes."""
        if frame_ms <= 0:
            raise ValueError("frame_ms must be positive")
        plan = self._plan
        if plan is None:
            return
        now = plan.start_time_ms
        while True:
            now = min(now + frame_ms, plan.end_time_ms)
            update = self.tick(now)
            if update is None:
                return
            yield update
            if update.outcome is not None:
                return

    def run_to_completion(self, frame_ms: float = DEFAULT_FRAME_MS) -> SpinOutcome | None:
        """Drive the current spin to its end and return the outcome."""
        outcome = None
        for update in self.frames(frame_ms):
            outcome = update.outcome
        return outcome
