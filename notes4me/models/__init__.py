"""Data models for the Notes4Me application."""

from .recording import Recording, StorageStats, RetentionPolicy
from .capture import CaptureStarted, CaptureStatus, RecordingResult
from .pipeline import (
    PipelineStage,
    PipelineState,
    EventType,
    PipelineEvent,
    ProcessingResult,
    InstallationStatus,
    DependencyStatus,
)

__all__ = [
    "Recording",
    "StorageStats",
    "RetentionPolicy",
    "CaptureStarted",
    "CaptureStatus",
    "RecordingResult",
    # Pipeline models
    "PipelineStage",
    "PipelineState",
    "EventType",
    "PipelineEvent",
    "ProcessingResult",
    "InstallationStatus",
    "DependencyStatus",
]
