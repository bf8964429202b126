"""Turn a submission payload into a :class:`RenderSpec` or reject it."""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import AbstractSet, Any, Mapping, Optional

from framecast import ExportFormat, Quality, RenderSpec, nominal_frame_count
from framecast.exceptions import ValidationError

from ..utils import to_bool


@dataclass(frozen=True, slots=True)
class SubmissionLimits:
    """Defaults and ceilings applied to every submission."""

    max_frames_per_job: int = 300
    max_resolution: int = 4
    default_fps: int = 30
    default_duration: float = 3.0
    default_width: int = 1920
    default_height: int = 1080
    default_resolution: int = 2

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "SubmissionLimits":
        return cls(
            max_frames_per_job=int(config.get("FRAMECAST_MAX_FRAMES_PER_JOB", 300)),
            max_resolution=int(config.get("FRAMECAST_MAX_RESOLUTION", 4)),
            default_fps=int(config.get("FRAMECAST_DEFAULT_FPS", 30)),
            default_duration=float(config.get("FRAMECAST_DEFAULT_DURATION", 3.0)),
            default_width=int(config.get("FRAMECAST_DEFAULT_WIDTH", 1920)),
            default_height=int(config.get("FRAMECAST_DEFAULT_HEIGHT", 1080)),
            default_resolution=int(config.get("FRAMECAST_DEFAULT_RESOLUTION", 2)),
        )


def _first(payload: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        value = payload.get(key)
        if value is not None:
            return value
    return None


def _positive_number(name: str, value: Any, default: float) -> float:
    if value is None:
        return float(default)
    if isinstance(value, bool):
        raise ValidationError(f"{name} must be a number")
    try:
        number = float(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"{name} must be a number") from exc
    if not math.isfinite(number) or number <= 0:
        raise ValidationError(f"{name} must be greater than zero")
    return number


def _positive_int(name: str, value: Any, default: int) -> int:
    number = _positive_number(name, value, default)
    if not number.is_integer():
        raise ValidationError(f"{name} must be a whole number")
    return int(number)


def _optional_text(name: str, value: Any) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{name} must be a string")
    return value


def build_render_spec(
    payload: Any,
    limits: SubmissionLimits,
    *,
    available_formats: Optional[AbstractSet[ExportFormat]] = None,
) -> RenderSpec:
    """Validate ``payload`` and return the immutable spec for a new job."""

    if not isinstance(payload, Mapping):
        raise ValidationError("Request body must be a JSON object")

    content = _first(payload, "content", "html")
    if not isinstance(content, str) or not content.strip():
        raise ValidationError("HTML content is required")

    duration = _positive_number("duration", payload.get("duration"), limits.default_duration)
    fps = _positive_int("fps", payload.get("fps"), limits.default_fps)
    width = _positive_int("width", payload.get("width"), limits.default_width)
    height = _positive_int("height", payload.get("height"), limits.default_height)
    resolution = _positive_int(
        "resolutionMultiplier",
        _first(payload, "resolutionMultiplier", "resolution"),
        limits.default_resolution,
    )
    if resolution > limits.max_resolution:
        raise ValidationError(f"Resolution too high. Maximum is {limits.max_resolution}x")

    speed = _positive_number("speedMultiplier", payload.get("speedMultiplier"), 1.0)
    natural_period_raw = payload.get("naturalPeriod")
    natural_period = (
        _positive_number("naturalPeriod", natural_period_raw, 0.0) if natural_period_raw is not None else None
    )

    export_format = ExportFormat.parse(payload.get("exportFormat") or ExportFormat.ZIP.value)
    if available_formats is not None and export_format not in available_formats:
        raise ValidationError(f"Export format {export_format.value} is not available on this server")
    quality = Quality.parse(payload.get("quality") or Quality.HIGH.value)

    tool_name = _optional_text("toolName", payload.get("toolName")) or "unknown"
    animation_script = _optional_text("animationScript", _first(payload, "animationScript", "animationCode"))

    spec = RenderSpec(
        content=content,
        duration=duration,
        fps=fps,
        width=width,
        height=height,
        resolution_multiplier=resolution,
        transparent=to_bool(payload.get("transparent"), default=True),
        tool_name=tool_name.strip() or "unknown",
        animation_script=animation_script or None,
        export_format=export_format,
        quality=quality,
        speed_multiplier=speed,
        perfect_loop=to_bool(payload.get("perfectLoop"), default=False),
        natural_period=natural_period,
    )

    nominal = nominal_frame_count(spec)
    if nominal > limits.max_frames_per_job:
        raise ValidationError(
            f"Too many frames requested. Maximum is {limits.max_frames_per_job} frames"
        )
    if spec.perfect_loop and nominal < 2:
        raise ValidationError("A perfect loop needs at least two frames")
    return spec


__all__ = ["SubmissionLimits", "build_render_spec"]
