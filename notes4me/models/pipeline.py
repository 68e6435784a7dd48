"""Pipeline state and event models."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Optional


class PipelineStage(Enum):
    """Stage of the recording -> transcript -> notes chain."""
    IDLE = "idle"
    RECORDING = "recording"
    TRANSCRIBING = "transcribing"
    SUMMARIZING = "summarizing"
    FAILED = "failed"


@dataclass
class PipelineState:
    """In-memory state of one recording's pipeline. Never persisted."""
    recording_path: Path
    stage: PipelineStage = PipelineStage.IDLE
    progress: int = 0          # Transcription percent, 0-100
    chars_emitted: int = 0     # Summary characters received so far
    reason: Optional[str] = None
    updated_at: datetime = field(default_factory=datetime.now)


class EventType(Enum):
    PROGRESS = "progress"
    COMPLETED = "completed"
    FAILED = "failed"
    WARNING = "warning"


@dataclass
class PipelineEvent:
    """Message published on the pipeline topics."""
    event_type: EventType
    recording_path: Optional[Path]
    stage: PipelineStage
    message: str = ""
    progress: Optional[int] = None
    chars_emitted: Optional[int] = None
    error: Optional[Exception] = None
    timestamp: datetime = field(default_factory=datetime.now)


@dataclass
class ProcessingResult:
    """Artifacts produced by a complete processing run."""
    recording_path: Path
    transcript_path: Path
    notes_path: Path


@dataclass
class InstallationStatus:
    """Whether the speech-to-text engine and its model can be found."""
    installed: bool = False
    binary_path: Optional[Path] = None
    model_path: Optional[Path] = None
    error: Optional[str] = None


@dataclass
class DependencyStatus:
    """Availability of the three external collaborators."""
    sox: bool = False
    whisper: bool = False
    ollama: bool = False
    details: dict = field(default_factory=dict)
    checked_at: datetime = field(default_factory=datetime.now)

    @property
    def all_available(self) -> bool:
        return self.sox and self.whisper and self.ollama
