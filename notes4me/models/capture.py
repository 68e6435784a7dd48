"""Audio capture session models."""

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path


@dataclass
class CaptureStarted:
    """Returned by a successful start of a capture session."""
    file_path: Path
    started_at: datetime


@dataclass
class CaptureStatus:
    """Snapshot of an active capture session."""
    is_recording: bool
    duration_seconds: float
    file_path: Path


@dataclass
class RecordingResult:
    """A finished, verified recording."""
    file_path: Path
    duration_seconds: float
    size_bytes: int
