"""Public package interface for framecast."""
from .assembler import Artifact, OutputAssembler
from .config import ExportFormat, Quality, RenderSpec, Viewport
from .encoder import EncodeRequest, FFmpegFrameEncoder
from .frames import FrameStore
from .timing import FrameTiming, capture_frame_count, frame_plan, frame_timestamps, nominal_frame_count

__all__ = [
    "Artifact",
    "EncodeRequest",
    "ExportFormat",
    "FFmpegFrameEncoder",
    "FrameStore",
    "FrameTiming",
    "OutputAssembler",
    "Quality",
    "RenderSpec",
    "Viewport",
    "capture_frame_count",
    "frame_plan",
    "frame_timestamps",
    "nominal_frame_count",
]
