"""Turn a completed frame sequence into the artifact a client downloads."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import FrozenSet, Optional, Protocol

from .archive import GENERATOR, write_frame_archive
from .config import ExportFormat, RenderSpec
from .encoder import EncodeRequest
from .exceptions import FramecastError, PackagingError
from .formats import profile_for
from .frames import FrameStore

LOGGER = logging.getLogger(__name__)


class FrameEncoder(Protocol):
    """What the assembler needs from a media encoder."""

    def available_formats(self) -> FrozenSet[ExportFormat]:
        ...

    def encode(
        self,
        frames: FrameStore,
        request: EncodeRequest,
        output_path: Path,
        *,
        timeout: Optional[float] = None,
    ) -> Path:
        ...


@dataclass(frozen=True, slots=True)
class Artifact:
    """A packaged job output on local disk."""

    path: Path
    size_bytes: int
    export_format: ExportFormat
    content_type: str


class OutputAssembler:
    """Package frames as a zip archive or hand them to the media encoder."""

    def __init__(self, encoder: Optional[FrameEncoder] = None, *, generator: Optional[str] = None) -> None:
        self._encoder = encoder
        self._generator = generator or GENERATOR

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def available_formats(self) -> FrozenSet[ExportFormat]:
        """Return ``zip`` plus whatever the encoder can currently produce."""

        formats = {ExportFormat.ZIP}
        if self._encoder is None:
            return frozenset(formats)
        try:
            formats.update(self._encoder.available_formats())
        except Exception as exc:
            LOGGER.warning("Media export not available: %s", exc)
        return frozenset(formats)

    def output_path(self, job_id: str, spec: RenderSpec, frames: FrameStore) -> Path:
        profile = profile_for(spec.export_format)
        return frames.job_dir / f"{job_id}.{profile.extension}"

    def assemble(
        self,
        job_id: str,
        spec: RenderSpec,
        frames: FrameStore,
        *,
        created_at: Optional[datetime] = None,
        timeout: Optional[float] = None,
    ) -> Artifact:
        """Package ``frames`` according to ``spec.export_format``.

        Any partially written artifact is removed before the error propagates.
        """

        profile = profile_for(spec.export_format)
        output_path = self.output_path(job_id, spec, frames)
        LOGGER.info("Packaging job %s as %s", job_id, profile.name)
        try:
            if not spec.export_format.is_media:
                write_frame_archive(
                    frames,
                    output_path,
                    job_id=job_id,
                    created_at=created_at,
                    generator=self._generator,
                )
            else:
                self._encode(job_id, spec, frames, output_path, timeout)
            size_bytes = output_path.stat().st_size
        except FramecastError:
            self._discard(output_path)
            raise
        except Exception as exc:
            self._discard(output_path)
            raise PackagingError(f"Packaging failed for job {job_id}: {exc}") from exc

        LOGGER.info("Job %s packaged: %s (%s bytes)", job_id, output_path, size_bytes)
        return Artifact(
            path=output_path,
            size_bytes=size_bytes,
            export_format=spec.export_format,
            content_type=profile.content_type,
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _encode(
        self,
        job_id: str,
        spec: RenderSpec,
        frames: FrameStore,
        output_path: Path,
        timeout: Optional[float],
    ) -> None:
        if self._encoder is None:
            raise PackagingError(f"No media encoder configured for {spec.export_format.value}")
        request = EncodeRequest(
            export_format=spec.export_format,
            fps=spec.fps,
            width=spec.output_width,
            height=spec.output_height,
            quality=spec.quality,
        )
        LOGGER.info("Encoding %s frames for job %s", len(frames.ordered_frames()), job_id)
        self._encoder.encode(frames, request, output_path, timeout=timeout)

    @staticmethod
    def _discard(path: Path) -> None:
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            LOGGER.warning("Failed to remove partial artifact %s: %s", path, exc)


__all__ = ["Artifact", "FrameEncoder", "OutputAssembler"]
