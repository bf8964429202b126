from __future__ import annotations

import json
import zipfile
from datetime import datetime, timezone
from pathlib import Path

import pytest

from framecast import ExportFormat, FrameStore, OutputAssembler, Quality
from framecast.exceptions import EncodingError, PackagingError

PNG_HEADER = b"\x89PNG\r\n\x1a\n"


def _captured(tmp_path: Path, count: int) -> FrameStore:
    frames = FrameStore(tmp_path / "job-1", count)
    frames.prepare()
    # written out of order on purpose
    for index in reversed(range(count)):
        frames.write_frame(index, PNG_HEADER + bytes([index]))
    return frames


def test_zip_archive_lists_frames_in_order_then_metadata(make_spec, tmp_path: Path) -> None:
    frames = _captured(tmp_path, 12)
    created = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

    artifact = OutputAssembler().assemble("job-1", make_spec(), frames, created_at=created)

    assert artifact.path == tmp_path / "job-1" / "job-1.zip"
    assert artifact.content_type == "application/zip"
    assert artifact.size_bytes == artifact.path.stat().st_size
    with zipfile.ZipFile(artifact.path) as archive:
        names = archive.namelist()
        metadata = json.loads(archive.read("metadata.json"))
        assert archive.read("frames/frame_0007.png") == PNG_HEADER + bytes([7])
    assert names == [f"frames/frame_{index:04d}.png" for index in range(12)] + ["metadata.json"]
    assert metadata == {
        "jobId": "job-1",
        "createdAt": "2024-05-01T12:00:00+00:00",
        "frameCount": 12,
        "format": "PNG Sequence",
        "generator": "framecast render service",
    }


def test_empty_frame_set_cannot_be_packaged(make_spec, tmp_path: Path) -> None:
    frames = FrameStore(tmp_path / "job-1", 3)
    frames.prepare()

    with pytest.raises(PackagingError):
        OutputAssembler().assemble("job-1", make_spec(), frames)

    assert not (tmp_path / "job-1" / "job-1.zip").exists()


def test_media_export_goes_through_encoder(fake_encoder, make_spec, tmp_path: Path) -> None:
    frames = _captured(tmp_path, 3)
    spec = make_spec(export_format=ExportFormat.MOV, quality=Quality.LOSSLESS, resolution_multiplier=3)

    artifact = OutputAssembler(fake_encoder).assemble("job-1", spec, frames, timeout=12.5)

    [(request, names, timeout)] = fake_encoder.requests
    assert request.quality is Quality.LOSSLESS
    assert (request.width, request.height) == (192, 96)
    assert names == ["frame_0000.png", "frame_0001.png", "frame_0002.png"]
    assert timeout == 12.5
    assert artifact.path.name == "job-1.mov"
    assert artifact.content_type == "video/quicktime"
    assert artifact.path.read_bytes() == b"media:3"


def test_encoder_failure_discards_partial_output(fake_encoder, make_spec, tmp_path: Path) -> None:
    frames = _captured(tmp_path, 2)
    fake_encoder.fail_with = EncodingError("FFmpeg exited with 1")

    with pytest.raises(EncodingError):
        OutputAssembler(fake_encoder).assemble("job-1", make_spec(export_format=ExportFormat.WEBM), frames)

    assert not (tmp_path / "job-1" / "job-1.webm").exists()


def test_unexpected_encoder_errors_become_packaging_errors(fake_encoder, make_spec, tmp_path: Path) -> None:
    frames = _captured(tmp_path, 2)
    fake_encoder.fail_with = ValueError("bad state")

    with pytest.raises(PackagingError) as excinfo:
        OutputAssembler(fake_encoder).assemble("job-1", make_spec(export_format=ExportFormat.GIF), frames)

    assert excinfo.value.phase == "packaging"
    assert not (tmp_path / "job-1" / "job-1.gif").exists()


def test_media_export_without_encoder_fails(make_spec, tmp_path: Path) -> None:
    frames = _captured(tmp_path, 1)

    with pytest.raises(PackagingError):
        OutputAssembler().assemble("job-1", make_spec(export_format=ExportFormat.GIF), frames)


def test_available_formats(fake_encoder) -> None:
    class BrokenEncoder:
        def available_formats(self):
            raise OSError("ffmpeg missing")

    assert OutputAssembler().available_formats() == {ExportFormat.ZIP}
    assert OutputAssembler(fake_encoder).available_formats() == set(ExportFormat)
    assert OutputAssembler(BrokenEncoder()).available_formats() == {ExportFormat.ZIP}
