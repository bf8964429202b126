"""On-disk layout for the frames captured by a job."""
from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import List

LOGGER = logging.getLogger(__name__)

FRAME_PREFIX = "frame_"
FRAME_SUFFIX = ".png"
MIN_INDEX_WIDTH = 4


def index_width(frame_count: int) -> int:
    """Return the zero-padding width needed to keep ``frame_count`` names sortable."""

    return max(MIN_INDEX_WIDTH, len(str(max(0, frame_count - 1))))


class FrameStore:
    """Zero-padded PNG frames under a per-job directory.

    Lexicographic order of the file names equals capture order, which is what
    both the archive packager and FFmpeg's image2 demuxer rely on.
    """

    def __init__(self, job_dir: Path, frame_count: int) -> None:
        self.job_dir = Path(job_dir)
        self.frames_dir = self.job_dir / "frames"
        self.frame_count = frame_count
        self.width = index_width(frame_count)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def prepare(self) -> Path:
        self.frames_dir.mkdir(parents=True, exist_ok=True)
        return self.frames_dir

    def remove_frames(self) -> bool:
        """Delete the frames directory; failures are logged, never raised."""

        return _remove_tree(self.frames_dir)

    def remove_all(self) -> bool:
        """Delete the whole job directory; failures are logged, never raised."""

        return _remove_tree(self.job_dir)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def frame_name(self, index: int) -> str:
        return f"{FRAME_PREFIX}{index:0{self.width}d}{FRAME_SUFFIX}"

    def frame_path(self, index: int) -> Path:
        return self.frames_dir / self.frame_name(index)

    def write_frame(self, index: int, data: bytes) -> Path:
        path = self.frame_path(index)
        path.write_bytes(data)
        return path

    def ordered_frames(self) -> List[Path]:
        """Return the captured frames sorted by index."""

        if not self.frames_dir.exists():
            return []
        return sorted(
            path
            for path in self.frames_dir.iterdir()
            if path.is_file() and path.name.startswith(FRAME_PREFIX) and path.suffix == FRAME_SUFFIX
        )

    def ffmpeg_pattern(self) -> str:
        """Return the printf-style input pattern FFmpeg expects."""

        return str(self.frames_dir / f"{FRAME_PREFIX}%0{self.width}d{FRAME_SUFFIX}")


def _remove_tree(path: Path) -> bool:
    if not path.exists():
        return False
    try:
        shutil.rmtree(path)
    except OSError as exc:
        LOGGER.warning("Failed to remove %s: %s", path, exc)
        return False
    LOGGER.debug("Removed %s", path)
    return True


__all__ = ["FRAME_PREFIX", "FRAME_SUFFIX", "FrameStore", "index_width"]
