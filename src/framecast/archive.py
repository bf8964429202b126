"""Package captured frames as a zip archive with a metadata record."""
from __future__ import annotations

import json
import logging
import zipfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from .exceptions import PackagingError
from .frames import FrameStore

LOGGER = logging.getLogger(__name__)

ARCHIVE_FRAMES_PREFIX = "frames/"
METADATA_NAME = "metadata.json"
SEQUENCE_FORMAT = "PNG Sequence"
GENERATOR = "framecast render service"
COMPRESSION_LEVEL = 9


def write_frame_archive(
    frames: FrameStore,
    output_path: Path,
    *,
    job_id: str,
    created_at: Optional[datetime] = None,
    generator: str = GENERATOR,
) -> Path:
    """Write every frame in ``frames`` to ``output_path`` in index order.

    Members are ``frames/frame_XXXX.png`` followed by ``metadata.json``.
    """

    ordered = frames.ordered_frames()
    if not ordered:
        raise PackagingError(f"No frames were captured for job {job_id}")

    created = created_at or datetime.now(timezone.utc)
    metadata = {
        "jobId": job_id,
        "createdAt": created.isoformat(),
        "frameCount": len(ordered),
        "format": SEQUENCE_FORMAT,
        "generator": generator,
    }

    output_path.parent.mkdir(parents=True, exist_ok=True)
    try:
        with zipfile.ZipFile(
            output_path,
            "w",
            compression=zipfile.ZIP_DEFLATED,
            compresslevel=COMPRESSION_LEVEL,
        ) as archive:
            for path in ordered:
                archive.write(path, arcname=f"{ARCHIVE_FRAMES_PREFIX}{path.name}")
            archive.writestr(METADATA_NAME, json.dumps(metadata, indent=2))
    except (OSError, zipfile.BadZipFile) as exc:
        raise PackagingError(f"Failed to write archive for job {job_id}: {exc}") from exc

    LOGGER.info("Archive created for job %s: %s bytes", job_id, output_path.stat().st_size)
    return output_path


__all__ = [
    "ARCHIVE_FRAMES_PREFIX",
    "GENERATOR",
    "METADATA_NAME",
    "SEQUENCE_FORMAT",
    "write_frame_archive",
]
