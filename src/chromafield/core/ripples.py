"""
Beat-triggered expanding-ring events.

A fixed-capacity pool of ripples spawned from onsets. Each ripple grows
from its minimum radius toward a target radius scaled by the onset
intensity, fading out with a cubic curve, and is retired the moment its
movement is complete. Storage is a set of parallel numpy arrays so the
whole pool can be evaluated over a pixel grid in one pass.
"""

import enum
import logging
import math
from collections import deque
from dataclasses import dataclass
from typing import Optional

import numpy as np

logger = logging.getLogger(__name__)

MAX_CAPACITY = 16


class OverflowPolicy(enum.Enum):
    """What spawn() does when every slot is active."""

    RECYCLE_OLDEST = "recycle_oldest"
    DROP_NEWEST = "drop_newest"


@dataclass(frozen=True)
class RippleParams:
    """Per-event ripple shape. None falls back to the pool defaults."""

    speed: Optional[float] = None
    width: Optional[float] = None
    min_radius: Optional[float] = None
    max_radius: Optional[float] = None
    intensity_multiplier: Optional[float] = None

    def merged(self, defaults: "RippleParams") -> "RippleParams":
        """Fill unset fields from *defaults*."""
        return RippleParams(**{
            name: getattr(defaults, name) if getattr(self, name) is None else getattr(self, name)
            for name in ("speed", "width", "min_radius", "max_radius", "intensity_multiplier")
        })


DEFAULT_RIPPLE_PARAMS = RippleParams(
    speed=0.3,
    width=0.05,
    min_radius=0.0,
    max_radius=1.3,
    intensity_multiplier=0.8,
)

# Bass rings are wide and low, treble rings thin and high.
BAND_RIPPLE_PARAMS = {
    "bass": RippleParams(width=0.15, max_radius=0.88, intensity_multiplier=0.65),
    "mid": RippleParams(),
    "treble": RippleParams(width=0.07, max_radius=0.5, intensity_multiplier=0.55),
}


def band_center_y(band: str, intensity: float = 0.0) -> float:
    """
    Vertical ripple origin for a band.

    Bass sits below center and sinks further with intensity, treble sits
    above center, everything else on the horizon.
    """
    if band == "bass":
        return -0.15 - 0.25 * float(np.clip(intensity, 0.0, 1.0))
    if band == "treble":
        return 0.25
    return 0.0


@dataclass(frozen=True)
class RippleEvent:
    """Read-only view of one ripple slot."""

    center: tuple[float, float]
    spawn_time: float
    intensity: float
    speed: float
    width: float
    min_radius: float
    max_radius: float
    intensity_multiplier: float
    active: bool

    @property
    def target_radius(self) -> float:
        return self.min_radius + (self.max_radius - self.min_radius) * self.intensity

    @property
    def movement_duration(self) -> float:
        return _movement_duration(self.target_radius, self.min_radius, self.speed)

    def age(self, now: float) -> float:
        return max(now - self.spawn_time, 0.0)

    def current_radius(self, now: float) -> float:
        travel = self.target_radius - self.min_radius
        return self.min_radius + min(self.age(now) * self.speed, travel)


def _movement_duration(target, min_radius, speed):
    travel = np.maximum(np.asarray(target) - np.asarray(min_radius), 0.0)
    speed = np.asarray(speed, dtype=np.float64)
    with np.errstate(divide="ignore", invalid="ignore"):
        duration = np.where(speed > 0, travel / np.where(speed > 0, speed, 1.0), 0.0)
    if np.ndim(duration) == 0:
        return float(duration)
    return duration


class _RippleArrays:
    """Parallel per-slot arrays shared by the pool and its snapshots."""

    fields = (
        "cx", "cy", "spawn_time", "intensity", "speed", "width",
        "min_radius", "max_radius", "multiplier",
    )

    def __init__(self, capacity: int):
        for name in self.fields:
            setattr(self, name, np.zeros(capacity, dtype=np.float64))
        self.active = np.zeros(capacity, dtype=bool)

    def copy(self) -> "_RippleArrays":
        clone = _RippleArrays(0)
        for name in self.fields + ("active",):
            arr = getattr(self, name).copy()
            arr.flags.writeable = False
            setattr(clone, name, arr)
        return clone

    @property
    def target_radius(self) -> np.ndarray:
        return self.min_radius + (self.max_radius - self.min_radius) * self.intensity

    @property
    def duration(self) -> np.ndarray:
        return _movement_duration(self.target_radius, self.min_radius, self.speed)

    def event(self, i: int) -> RippleEvent:
        return RippleEvent(
            center=(float(self.cx[i]), float(self.cy[i])),
            spawn_time=float(self.spawn_time[i]),
            intensity=float(self.intensity[i]),
            speed=float(self.speed[i]),
            width=float(self.width[i]),
            min_radius=float(self.min_radius[i]),
            max_radius=float(self.max_radius[i]),
            intensity_multiplier=float(self.multiplier[i]),
            active=bool(self.active[i]),
        )

    def render(self, x, y, time: float) -> np.ndarray:
        """Summed ring contribution at positions (x, y)."""
        x = np.asarray(x, dtype=np.float64)
        y = np.asarray(y, dtype=np.float64)
        total = np.zeros(np.broadcast(x, y).shape, dtype=np.float64)

        duration = self.duration
        for i in np.flatnonzero(self.active):
            age = max(time - self.spawn_time[i], 0.0)
            dur = duration[i]
            if dur <= 0 or age >= dur:
                continue
            travel = self.target_radius[i] - self.min_radius[i]
            radius = self.min_radius[i] + min(age * self.speed[i], travel)
            fade = (1.0 - min(age / dur, 1.0)) ** 3
            gain = fade * self.intensity[i] * self.multiplier[i]
            if gain <= 0:
                continue

            distance = np.hypot(x - self.cx[i], y - self.cy[i])
            width = max(self.width[i], 1e-6)
            total += np.exp(-np.abs(distance - radius) / width) * gain
        return total


class RippleField:
    """
    Immutable snapshot of the pool for one frame.

    Safe to evaluate from any number of readers while the pool itself
    moves on to the next frame.
    """

    def __init__(self, arrays: _RippleArrays, time: float):
        self._arrays = arrays
        self.time = time

    @classmethod
    def empty(cls, time: float = 0.0) -> "RippleField":
        return cls(_RippleArrays(0), time)

    @property
    def active_count(self) -> int:
        return int(self._arrays.active.sum())

    @property
    def events(self) -> tuple[RippleEvent, ...]:
        return tuple(
            self._arrays.event(i) for i in np.flatnonzero(self._arrays.active)
        )

    def render(self, x, y, time: Optional[float] = None):
        """
        Sum of active ring intensities at (x, y).

        Args:
            x: Horizontal position(s) in [-1, 1].
            y: Vertical position(s) in [-1, 1].
            time: Evaluation time; defaults to the snapshot time.

        Returns:
            Float for scalar positions, otherwise an array.
        """
        total = self._arrays.render(x, y, self.time if time is None else time)
        if total.ndim == 0:
            return float(total)
        return total


class RippleEventPool:
    """
    Fixed-capacity ripple registry.

    Capacity is set at construction. When every slot is active, spawn()
    either overwrites the oldest event or rejects the new one, depending
    on the overflow policy. An optional rate limit stops dense onset
    bursts from flooding the pool: after `rate_limit_count` spawns inside
    `rate_limit_window` seconds further spawns are refused for
    `cooldown` seconds.
    """

    def __init__(
        self,
        capacity: int = 12,
        overflow: OverflowPolicy = OverflowPolicy.RECYCLE_OLDEST,
        defaults: RippleParams = DEFAULT_RIPPLE_PARAMS,
        rate_limit_count: Optional[int] = 9,
        rate_limit_window: float = 0.5,
        cooldown: float = 0.3,
    ):
        if not 1 <= capacity <= MAX_CAPACITY:
            raise ValueError(f"capacity must be between 1 and {MAX_CAPACITY}, got {capacity}")
        self.capacity = capacity
        self.overflow = OverflowPolicy(overflow)
        self.defaults = DEFAULT_RIPPLE_PARAMS if defaults is None else defaults.merged(DEFAULT_RIPPLE_PARAMS)
        self.rate_limit_count = rate_limit_count
        self.rate_limit_window = rate_limit_window
        self.cooldown = cooldown

        self._slots = _RippleArrays(capacity)
        self._recent_spawns: deque = deque()
        self._cooldown_until = -math.inf
        self._time = 0.0

    @property
    def active_count(self) -> int:
        return int(self._slots.active.sum())

    @property
    def events(self) -> tuple[RippleEvent, ...]:
        """Active events, in slot order."""
        return tuple(self._slots.event(i) for i in np.flatnonzero(self._slots.active))

    def reset(self) -> None:
        self._slots = _RippleArrays(self.capacity)
        self._recent_spawns.clear()
        self._cooldown_until = -math.inf
        self._time = 0.0

    def _rate_limited(self, now: float) -> bool:
        if not self.rate_limit_count:
            return False
        if now < self._cooldown_until:
            return True
        while self._recent_spawns and now - self._recent_spawns[0] > self.rate_limit_window:
            self._recent_spawns.popleft()
        if len(self._recent_spawns) >= self.rate_limit_count:
            self._cooldown_until = now + self.cooldown
            self._recent_spawns.clear()
            logger.debug("Ripple rate limit hit at %.3fs; cooling down %.2fs", now, self.cooldown)
            return True
        return False

    def _alloc_slot(self) -> Optional[int]:
        free = np.flatnonzero(~self._slots.active)
        if len(free):
            return int(free[0])
        if self.overflow is OverflowPolicy.DROP_NEWEST:
            logger.debug("Ripple pool full (%d); dropping new ripple", self.capacity)
            return None
        oldest = int(np.argmin(self._slots.spawn_time))
        logger.debug("Ripple pool full (%d); recycling slot %d", self.capacity, oldest)
        return oldest

    def spawn(
        self,
        center: tuple[float, float],
        intensity: float,
        now: float,
        params: Optional[RippleParams] = None,
    ) -> Optional[int]:
        """
        Start a ripple at *center*.

        Args:
            center: (x, y) origin; x is the stereo position, y the frequency tier.
            intensity: Onset strength in (0, 1]; scales the target radius.
            now: Spawn time in seconds.
            params: Optional per-event overrides of the pool defaults.

        Returns:
            Slot index, or None when the ripple was not spawned.
        """
        if intensity is None or not math.isfinite(intensity) or intensity <= 0:
            return None
        if self._rate_limited(now):
            return None
        slot = self._alloc_slot()
        if slot is None:
            return None

        p = (params or RippleParams()).merged(self.defaults)
        s = self._slots
        s.cx[slot] = float(np.clip(center[0], -1.0, 1.0))
        s.cy[slot] = float(np.clip(center[1], -1.0, 1.0))
        s.spawn_time[slot] = now
        s.intensity[slot] = min(float(intensity), 1.0)
        s.speed[slot] = p.speed
        s.width[slot] = p.width
        s.min_radius[slot] = p.min_radius
        s.max_radius[slot] = max(p.max_radius, p.min_radius)
        s.multiplier[slot] = p.intensity_multiplier
        s.active[slot] = True

        if self.rate_limit_count:
            self._recent_spawns.append(now)
        return slot

    def tick(self, now: float) -> int:
        """
        Age the pool to *now* and retire finished ripples.

        Returns:
            Number of ripples deactivated.
        """
        self._time = now
        s = self._slots
        age = np.maximum(now - s.spawn_time, 0.0)
        finished = s.active & (age >= s.duration)
        s.active[finished] = False
        return int(finished.sum())

    def render(self, x, y, time: Optional[float] = None):
        """Summed contribution of all active ripples at (x, y)."""
        total = self._slots.render(x, y, self._time if time is None else time)
        if total.ndim == 0:
            return float(total)
        return total

    def snapshot(self) -> RippleField:
        return RippleField(self._slots.copy(), self._time)

