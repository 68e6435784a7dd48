"""Recording and derived-artifact models."""

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Optional


@dataclass
class Recording:
    """A captured audio file joined to its derived transcript and notes."""
    path: Path
    size_bytes: int
    modified_at: datetime
    created_at: Optional[datetime]  # Parsed from the filename timestamp token
    transcript_path: Path
    notes_path: Path
    has_transcript: bool = False
    has_notes: bool = False
    age_days: int = 0

    @property
    def filename(self) -> str:
        return self.path.name

    @property
    def stem(self) -> str:
        return self.path.stem


@dataclass
class StorageStats:
    """Aggregate disk usage of recordings and processed files."""
    total_size_bytes: int
    total_size_formatted: str
    recording_count: int
    transcript_count: int
    notes_count: int


@dataclass(frozen=True)
class RetentionPolicy:
    """Days to keep recordings. Transcripts and notes are never expired."""
    days: int = 7

    MIN_DAYS = 1
    MAX_DAYS = 30

    def __post_init__(self):
        if isinstance(self.days, bool) or not isinstance(self.days, int):
            raise ValueError(f"Retention days must be an integer, got {self.days!r}")
        if not self.MIN_DAYS <= self.days <= self.MAX_DAYS:
            raise ValueError(
                f"Retention days must be between {self.MIN_DAYS} and {self.MAX_DAYS}, got {self.days}")

    @property
    def max_age_seconds(self) -> float:
        return self.days * 24 * 60 * 60
