"""Hand captured PNG sequences to FFmpeg for video and GIF encoding."""
from __future__ import annotations

import logging
import re
import shlex
import subprocess
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Dict, FrozenSet, List, Optional

import ffmpeg  # type: ignore

from .config import ExportFormat, Quality
from .exceptions import EncodingError, JobTimeoutError
from .formats import FORMAT_PROFILES
from .frames import FrameStore

LOGGER = logging.getLogger(__name__)

_ENCODER_LINE = re.compile(r"^\s*[VAS][A-Z.]{5}\s+(\S+)")

_PRORES_QSCALE: Dict[Quality, str] = {
    Quality.LOW: "15",
    Quality.MEDIUM: "10",
    Quality.HIGH: "5",
    Quality.LOSSLESS: "0",
}

_VP9_RATE: Dict[Quality, tuple] = {
    Quality.LOW: ("40", "1M"),
    Quality.MEDIUM: ("30", "2M"),
    Quality.HIGH: ("20", "4M"),
    Quality.LOSSLESS: ("0", "0"),
}

_GIF_DITHER: Dict[Quality, Dict[str, object]] = {
    Quality.LOW: {"dither": "bayer", "bayer_scale": 5},
    Quality.MEDIUM: {"dither": "bayer", "bayer_scale": 3},
    Quality.HIGH: {"dither": "bayer", "bayer_scale": 1},
    Quality.LOSSLESS: {"dither": "none"},
}


@lru_cache(maxsize=8)
def _list_encoders(ffmpeg_binary: str) -> FrozenSet[str]:
    """Return the encoder names advertised by ``ffmpeg -encoders``.

    Failures raise, so only a successful listing is cached.
    """

    try:
        result = subprocess.run(
            [ffmpeg_binary, "-hide_banner", "-encoders"],
            text=True,
            capture_output=True,
            check=False,
        )
    except FileNotFoundError as exc:
        raise EncodingError(f"FFmpeg binary '{ffmpeg_binary}' not found") from exc
    if result.returncode != 0:
        raise EncodingError(f"FFmpeg encoder listing exited with {result.returncode}")

    names = set()
    for line in result.stdout.splitlines():
        match = _ENCODER_LINE.match(line)
        if match:
            names.add(match.group(1))
    return frozenset(names)


def _available_encoders(ffmpeg_binary: str) -> FrozenSet[str]:
    try:
        return _list_encoders(ffmpeg_binary)
    except EncodingError as exc:
        LOGGER.warning("Unable to list FFmpeg encoders: %s", exc)
        return frozenset()


@dataclass(frozen=True, slots=True)
class EncodeRequest:
    """Parameters handed to the encoder alongside the ordered frames."""

    export_format: ExportFormat
    fps: int
    width: int
    height: int
    quality: Quality = Quality.HIGH


class FFmpegFrameEncoder:
    """Build and run FFmpeg commands that turn a frame sequence into media."""

    def __init__(self, ffmpeg_binary: str = "ffmpeg") -> None:
        self.ffmpeg_binary = ffmpeg_binary

    def available_formats(self) -> FrozenSet[ExportFormat]:
        """Return the media formats whose encoders this FFmpeg build provides."""

        encoders = _available_encoders(self.ffmpeg_binary)
        return frozenset(
            profile.export_format
            for profile in FORMAT_PROFILES.values()
            if profile.encoder and profile.encoder in encoders
        )

    def build_command(self, frames: FrameStore, request: EncodeRequest, output_path: Path) -> List[str]:
        """Return the FFmpeg argument list for ``request``."""

        source = ffmpeg.input(frames.ffmpeg_pattern(), framerate=request.fps, start_number=0)
        size = f"{request.width}x{request.height}"
        target = str(output_path)

        if request.export_format is ExportFormat.MOV:
            output = source.output(
                target,
                vcodec="prores_ks",
                pix_fmt="yuva444p10le",
                vendor="apl0",
                s=size,
                r=request.fps,
                **{"profile:v": "4444", "q:v": _PRORES_QSCALE[request.quality]},
            )
        elif request.export_format is ExportFormat.WEBM:
            crf, bitrate = _VP9_RATE[request.quality]
            extra: Dict[str, object] = {"auto-alt-ref": 0, "lag-in-frames": 25, "b:v": bitrate}
            if request.quality is Quality.LOSSLESS:
                extra["lossless"] = 1
            output = source.output(
                target,
                vcodec="libvpx-vp9",
                pix_fmt="yuva420p",
                crf=crf,
                s=size,
                r=request.fps,
                **extra,
            )
        elif request.export_format is ExportFormat.GIF:
            if request.quality is Quality.LOW:
                source = source.filter("scale", "iw/2", "ih/2")
            split = source.split()
            palette = split[0].filter("palettegen", stats_mode="diff")
            graph = ffmpeg.filter([split[1], palette], "paletteuse", **_GIF_DITHER[request.quality])
            output = graph.output(target, r=request.fps)
        else:
            raise EncodingError(f"Format {request.export_format.value} is not a media format")

        return output.overwrite_output().compile(cmd=self.ffmpeg_binary)

    def encode(
        self,
        frames: FrameStore,
        request: EncodeRequest,
        output_path: Path,
        *,
        timeout: Optional[float] = None,
    ) -> Path:
        """Run FFmpeg to completion and return ``output_path``."""

        if request.export_format not in self.available_formats():
            raise EncodingError(f"FFmpeg cannot encode {request.export_format.value} on this host")

        output_path.parent.mkdir(parents=True, exist_ok=True)
        command = self.build_command(frames, request, output_path)
        LOGGER.info("Running FFmpeg: %s", shlex.join(command))
        try:
            result = subprocess.run(command, text=True, capture_output=True, check=False, timeout=timeout)
        except subprocess.TimeoutExpired as exc:
            raise JobTimeoutError(f"FFmpeg did not finish within {timeout:.1f}s") from exc
        except OSError as exc:
            raise EncodingError(f"Unable to launch FFmpeg: {exc}") from exc
        if result.returncode != 0:
            raise EncodingError(f"FFmpeg exited with {result.returncode}: {result.stderr.strip()}")
        if not output_path.exists():
            raise EncodingError(f"FFmpeg reported success but {output_path.name} was not written")
        return output_path


__all__ = ["EncodeRequest", "FFmpegFrameEncoder"]
