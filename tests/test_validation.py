from __future__ import annotations

import pytest

from framecast import ExportFormat, Quality
from framecast.exceptions import ValidationError
from framecast_service.services.validation import SubmissionLimits, build_render_spec

LIMITS = SubmissionLimits()


def test_defaults_fill_missing_fields() -> None:
    spec = build_render_spec({"html": "<div></div>", "duration": 2}, LIMITS)

    assert spec.content == "<div></div>"
    assert spec.duration == 2.0
    assert spec.fps == 30
    assert (spec.width, spec.height, spec.resolution_multiplier) == (1920, 1080, 2)
    assert spec.transparent is True
    assert spec.tool_name == "unknown"
    assert spec.export_format is ExportFormat.ZIP
    assert spec.quality is Quality.HIGH
    assert spec.perfect_loop is False
    assert spec.natural_period is None


def test_aliases_and_explicit_values() -> None:
    spec = build_render_spec(
        {
            "content": "<canvas></canvas>",
            "duration": "1.5",
            "fps": 24,
            "width": 800,
            "height": 600,
            "resolution": 3,
            "transparent": "false",
            "toolName": "orbit tool",
            "animationCode": "window.updateAnimation = () => {};",
            "exportFormat": "WEBM",
            "quality": "low",
            "speedMultiplier": 2,
            "perfectLoop": True,
            "naturalPeriod": 1.0,
        },
        LIMITS,
    )

    assert spec.duration == 1.5
    assert spec.resolution_multiplier == 3
    assert spec.transparent is False
    assert spec.tool_name == "orbit tool"
    assert spec.animation_script == "window.updateAnimation = () => {};"
    assert spec.export_format is ExportFormat.WEBM
    assert spec.quality is Quality.LOW
    assert spec.speed_multiplier == 2.0
    assert spec.perfect_loop is True
    assert spec.natural_period == 1.0


@pytest.mark.parametrize(
    "payload, message",
    [
        (None, "JSON object"),
        ([], "JSON object"),
        ({}, "HTML content is required"),
        ({"content": "   "}, "HTML content is required"),
        ({"content": "<p></p>", "duration": 0}, "duration"),
        ({"content": "<p></p>", "duration": "soon"}, "duration"),
        ({"content": "<p></p>", "fps": 29.97}, "fps must be a whole number"),
        ({"content": "<p></p>", "fps": True}, "fps"),
        ({"content": "<p></p>", "width": -10}, "width"),
        ({"content": "<p></p>", "resolution": 5}, "Resolution too high. Maximum is 4x"),
        ({"content": "<p></p>", "speedMultiplier": 0}, "speedMultiplier"),
        ({"content": "<p></p>", "naturalPeriod": -1}, "naturalPeriod"),
        ({"content": "<p></p>", "exportFormat": "avi"}, "Unsupported export format"),
        ({"content": "<p></p>", "quality": "ultra"}, "Unsupported quality"),
        ({"content": "<p></p>", "toolName": 7}, "toolName"),
        ({"content": "<p></p>", "duration": 11, "fps": 30}, "Too many frames requested. Maximum is 300 frames"),
        ({"content": "<p></p>", "duration": 0.1, "fps": 10, "perfectLoop": True}, "at least two frames"),
    ],
)
def test_invalid_submissions_are_rejected(payload, message: str) -> None:
    with pytest.raises(ValidationError, match=message):
        build_render_spec(payload, LIMITS)


def test_frame_limit_counts_nominal_frames() -> None:
    spec = build_render_spec({"content": "<p></p>", "duration": 10, "fps": 30}, LIMITS)

    assert spec.duration == 10.0


def test_unavailable_media_format_is_rejected() -> None:
    with pytest.raises(ValidationError, match="not available"):
        build_render_spec(
            {"content": "<p></p>", "exportFormat": "mov"},
            LIMITS,
            available_formats=frozenset({ExportFormat.ZIP}),
        )


def test_limits_follow_configuration() -> None:
    limits = SubmissionLimits.from_config(
        {"FRAMECAST_MAX_FRAMES_PER_JOB": "20", "FRAMECAST_MAX_RESOLUTION": 1, "FRAMECAST_DEFAULT_FPS": 12}
    )

    assert limits == SubmissionLimits(max_frames_per_job=20, max_resolution=1, default_fps=12)
    with pytest.raises(ValidationError, match="Maximum is 20 frames"):
        build_render_spec({"content": "<p></p>", "duration": 2, "resolution": 1}, limits)
