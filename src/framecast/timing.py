"""Deterministic frame timing for captured animations.

Every function in this module is pure: the same :class:`RenderSpec` always
yields the same frame counts and the same ordered list of timestamps.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import List, Sequence

from .config import RenderSpec

# Digits kept before rounding up so that float noise such as
# 0.3 * 10 == 3.0000000000000004 does not add a frame.
_FRAME_COUNT_PRECISION = 9


@dataclass(frozen=True, slots=True)
class FrameTiming:
    """Timestamp assigned to a single captured frame."""

    index: int
    raw_time: float
    applied_time: float


def nominal_frame_count(spec: RenderSpec) -> int:
    """Return ``ceil(effective_period * fps)`` for ``spec``."""

    product = round(spec.effective_period * spec.fps, _FRAME_COUNT_PRECISION)
    return int(math.ceil(product))


def capture_frame_count(spec: RenderSpec) -> int:
    """Return how many frames are actually captured.

    A perfect loop drops the final frame because it would duplicate frame 0.
    """

    nominal = nominal_frame_count(spec)
    if spec.perfect_loop:
        nominal -= 1
    return max(1, nominal)


def applied_time(spec: RenderSpec, index: int) -> float:
    """Return the animation time, in seconds, shown in frame ``index``."""

    raw = index / spec.fps
    scaled = raw * spec.speed_multiplier
    if spec.perfect_loop:
        return scaled % spec.effective_period
    return scaled


def frame_plan(spec: RenderSpec) -> List[FrameTiming]:
    """Return the full ordered capture plan for ``spec``."""

    return [
        FrameTiming(index=index, raw_time=index / spec.fps, applied_time=applied_time(spec, index))
        for index in range(capture_frame_count(spec))
    ]


def frame_timestamps(spec: RenderSpec) -> Sequence[float]:
    """Return only the applied timestamps, in capture order."""

    return tuple(timing.applied_time for timing in frame_plan(spec))


__all__ = [
    "FrameTiming",
    "applied_time",
    "capture_frame_count",
    "frame_plan",
    "frame_timestamps",
    "nominal_frame_count",
]
