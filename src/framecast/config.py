"""Configuration objects describing a single render request."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .exceptions import ValidationError


class ExportFormat(str, Enum):
    """Artifact formats a job can be packaged into."""

    ZIP = "zip"
    MOV = "mov"
    WEBM = "webm"
    GIF = "gif"

    @classmethod
    def parse(cls, value: object) -> "ExportFormat":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError as exc:
            raise ValidationError(f"Unsupported export format: {value}") from exc

    @property
    def is_media(self) -> bool:
        return self is not ExportFormat.ZIP


class Quality(str, Enum):
    """Quality tiers understood by the media encoder."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    LOSSLESS = "lossless"

    @classmethod
    def parse(cls, value: object) -> "Quality":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError as exc:
            raise ValidationError(f"Unsupported quality tier: {value}") from exc


@dataclass(frozen=True, slots=True)
class Viewport:
    """Pixel dimensions of the capture surface."""

    width: int
    height: int
    device_scale_factor: int = 1


@dataclass(frozen=True, slots=True)
class RenderSpec:
    """Immutable parameters of a render job, fixed at submission time."""

    content: str
    duration: float = 3.0
    fps: int = 30
    width: int = 1920
    height: int = 1080
    resolution_multiplier: int = 2
    transparent: bool = True
    tool_name: str = "unknown"
    animation_script: Optional[str] = None
    export_format: ExportFormat = ExportFormat.ZIP
    quality: Quality = Quality.HIGH
    speed_multiplier: float = 1.0
    perfect_loop: bool = False
    natural_period: Optional[float] = None

    @property
    def effective_period(self) -> float:
        """Length of the animation cycle the frame count is derived from."""

        if self.perfect_loop and self.natural_period is not None:
            return self.natural_period
        return self.duration

    @property
    def viewport(self) -> Viewport:
        return Viewport(width=self.output_width, height=self.output_height)

    @property
    def output_width(self) -> int:
        return self.width * self.resolution_multiplier

    @property
    def output_height(self) -> int:
        return self.height * self.resolution_multiplier


__all__ = ["ExportFormat", "Quality", "RenderSpec", "Viewport"]
