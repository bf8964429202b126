"""Static description of every export format the service can produce."""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional, Tuple

from .config import ExportFormat

_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


@dataclass(frozen=True, slots=True)
class FormatProfile:
    """Packaging and presentation details for one :class:`ExportFormat`."""

    export_format: ExportFormat
    name: str
    extension: str
    content_type: str
    download_kind: str
    description: str
    pros: Tuple[str, ...]
    cons: Tuple[str, ...]
    best_for: str
    encoder: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "extension": self.extension,
            "contentType": self.content_type,
            "description": self.description,
            "pros": list(self.pros),
            "cons": list(self.cons),
            "bestFor": self.best_for,
        }


FORMAT_PROFILES: Dict[ExportFormat, FormatProfile] = {
    ExportFormat.ZIP: FormatProfile(
        export_format=ExportFormat.ZIP,
        name="ZIP (PNG Sequence)",
        extension="zip",
        content_type="application/zip",
        download_kind="frames",
        description="Collection of individual PNG frames",
        pros=("Frame-by-frame control", "Universal compatibility", "No quality loss"),
        cons=("Large file sizes", "Requires assembly for playback"),
        best_for="Professional editing, frame analysis, maximum flexibility",
    ),
    ExportFormat.MOV: FormatProfile(
        export_format=ExportFormat.MOV,
        name="MOV (ProRes 4444)",
        extension="mov",
        content_type="video/quicktime",
        download_kind="video",
        description="High-quality Apple ProRes with transparency support",
        pros=("Professional quality", "Excellent transparency", "Industry standard"),
        cons=("Large file sizes", "Limited browser support"),
        best_for="Professional workflows, After Effects, Final Cut Pro",
        encoder="prores_ks",
    ),
    ExportFormat.WEBM: FormatProfile(
        export_format=ExportFormat.WEBM,
        name="WebM (VP9)",
        extension="webm",
        content_type="video/webm",
        download_kind="video",
        description="Web-optimized format with transparency support",
        pros=("Smaller file sizes", "Web-native", "Good compression"),
        cons=("Lower quality than ProRes", "Limited pro software support"),
        best_for="Web use, social media, general sharing",
        encoder="libvpx-vp9",
    ),
    ExportFormat.GIF: FormatProfile(
        export_format=ExportFormat.GIF,
        name="GIF (Animated)",
        extension="gif",
        content_type="image/gif",
        download_kind="animation",
        description="Classic animated GIF with optimized palette",
        pros=("Universal support", "Perfect loops", "Small file sizes", "Transparency"),
        cons=("256 color limit", "No audio support"),
        best_for="Social media, memes, simple animations, loops",
        encoder="gif",
    ),
}


def profile_for(export_format: ExportFormat) -> FormatProfile:
    return FORMAT_PROFILES[ExportFormat.parse(export_format)]


def sanitize_component(value: str, *, fallback: str = "unknown") -> str:
    """Collapse ``value`` into a string safe to embed in a file name."""

    cleaned = _UNSAFE_FILENAME_CHARS.sub("_", value or "").strip("._")
    return cleaned or fallback


def download_filename(tool_name: str, export_format: ExportFormat, timestamp_ms: int) -> str:
    """Return the suggested attachment name, e.g. ``orbit_video_1700000000000.webm``."""

    profile = profile_for(export_format)
    return f"{sanitize_component(tool_name)}_{profile.download_kind}_{int(timestamp_ms)}.{profile.extension}"


def formats_payload(available: Iterable[ExportFormat]) -> Dict[str, Any]:
    """Describe ``available`` formats in the shape returned by the API."""

    wanted = set(available)
    ordered = [fmt for fmt in FORMAT_PROFILES if fmt in wanted]
    return {
        "formats": [fmt.value for fmt in ordered],
        "info": {fmt.value: FORMAT_PROFILES[fmt].to_payload() for fmt in ordered},
    }


__all__ = [
    "FORMAT_PROFILES",
    "FormatProfile",
    "download_filename",
    "formats_payload",
    "profile_for",
    "sanitize_component",
]
