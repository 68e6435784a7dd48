"""On-disk registry of recordings, transcripts and notes."""

import math
import time
import logging
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Union

from ..models.recording import Recording, StorageStats, RetentionPolicy
from . import naming

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 24 * 60 * 60
SIZE_UNITS = ["Bytes", "KB", "MB", "GB", "TB"]


def format_bytes(size_bytes: int) -> str:
    """Format a byte count for display (e.g. "1.5 GB")."""
    if size_bytes <= 0:
        return "0 Bytes"

    exponent = min(int(math.log(size_bytes, 1024)), len(SIZE_UNITS) - 1)
    # log() can land just below an exact power of 1024
    if exponent + 1 < len(SIZE_UNITS) and size_bytes >= 1024 ** (exponent + 1):
        exponent += 1
    value = round(size_bytes / (1024 ** exponent), 2)
    return f"{value:g} {SIZE_UNITS[exponent]}"


class ArtifactStore:
    """Manages the recordings/, processed/ and temp/ directories under one base directory.

    The store keeps no index. Every call reads the filesystem, and recordings
    are joined to their transcript and notes purely by filename.
    """

    def __init__(self, base_dir: Union[str, Path]):
        """Initialize artifact store.

        Args:
            base_dir: Base directory for all artifacts
        """
        self.base_dir = Path(base_dir)
        self.recordings_dir = self.base_dir / naming.RECORDINGS_DIRNAME
        self.processed_dir = self.base_dir / naming.PROCESSED_DIRNAME
        self.temp_dir = self.base_dir / naming.TEMP_DIRNAME

        logger.info(f"ArtifactStore initialized with base_dir: {self.base_dir}")

    def ensure_layout(self) -> None:
        """Ensure all required directories exist. Safe to call repeatedly."""
        for directory in [self.recordings_dir, self.processed_dir, self.temp_dir]:
            directory.mkdir(parents=True, exist_ok=True)
            logger.debug(f"Ensured directory exists: {directory}")

    def transcript_path_for(self, recording_path: Union[str, Path]) -> Path:
        return naming.transcript_path_for(recording_path, self.processed_dir)

    def notes_path_for(self, recording_path: Union[str, Path]) -> Path:
        return naming.notes_path_for(self.transcript_path_for(recording_path))

    def resolve_recording(self, name_or_path: Union[str, Path]) -> Path:
        """Map a bare filename to the recordings directory when it exists there.

        Anything else is returned unchanged.
        """
        path = Path(name_or_path)
        if path.parent == Path("."):
            candidate = self.recordings_dir / path.name
            if candidate.exists() or not path.exists():
                return candidate
        return path

    def list_recordings(self) -> List[Recording]:
        """List recordings with their transcript and notes status.

        Returns:
            Recordings sorted newest first by modification time
        """
        if not self.recordings_dir.is_dir():
            return []

        recordings = []
        now = time.time()
        try:
            entries = list(self.recordings_dir.iterdir())
        except OSError as e:
            logger.error(f"Error listing recordings: {e}")
            return []

        for path in entries:
            if not naming.is_recording_file(path):
                continue
            try:
                stat = path.stat()
                if not path.is_file():
                    continue
            except OSError as e:
                # Skip files we can't access
                logger.debug(f"Skipping unreadable recording {path}: {e}")
                continue

            transcript_path = self.transcript_path_for(path)
            notes_path = naming.notes_path_for(transcript_path)
            recordings.append(Recording(
                path=path,
                size_bytes=stat.st_size,
                modified_at=datetime.fromtimestamp(stat.st_mtime),
                created_at=naming.parse_recording_timestamp(path),
                transcript_path=transcript_path,
                notes_path=notes_path,
                has_transcript=transcript_path.exists(),
                has_notes=notes_path.exists(),
                age_days=self.recording_age_days(path, now),
            ))

        recordings.sort(key=lambda r: r.modified_at, reverse=True)
        logger.debug(f"Found {len(recordings)} recordings")
        return recordings

    def stats(self) -> StorageStats:
        """Get storage usage across recordings and processed files."""
        total_size = 0
        recording_count = 0
        transcript_count = 0
        notes_count = 0

        for path in self._iter_files(self.recordings_dir):
            if not naming.is_recording_file(path):
                continue
            try:
                total_size += path.stat().st_size
            except OSError:
                continue
            recording_count += 1

        for path in self._iter_files(self.processed_dir):
            try:
                total_size += path.stat().st_size
            except OSError:
                continue
            if naming.is_transcript_file(path):
                transcript_count += 1
            elif naming.is_notes_file(path):
                notes_count += 1

        return StorageStats(
            total_size_bytes=total_size,
            total_size_formatted=format_bytes(total_size),
            recording_count=recording_count,
            transcript_count=transcript_count,
            notes_count=notes_count,
        )

    def cleanup(self, retention: Union[int, RetentionPolicy] = 7, now: Optional[float] = None) -> List[str]:
        """Delete recordings older than the retention window.

        Transcripts and notes are kept forever; only audio is expired.

        Args:
            retention: Days to keep (1-30) or a RetentionPolicy
            now: Reference time as a POSIX timestamp, defaults to the current time

        Returns:
            Filenames of the deleted recordings

        Raises:
            ValueError: If the retention days are outside 1-30
        """
        policy = retention if isinstance(retention, RetentionPolicy) else RetentionPolicy(retention)
        reference = time.time() if now is None else now

        deleted = []
        for path in self._iter_files(self.recordings_dir):
            if not naming.is_recording_file(path):
                continue
            try:
                age = reference - path.stat().st_mtime
                if age > policy.max_age_seconds:
                    path.unlink()
                    deleted.append(path.name)
                    logger.info(f"Deleted old recording: {path.name} (age: {age / SECONDS_PER_DAY:.1f} days)")
            except OSError as e:
                logger.error(f"Failed to delete {path.name}: {e}")

        if deleted:
            logger.info(f"Cleanup complete: {len(deleted)} file(s) deleted")
        return deleted

    def delete_one(self, recording_path: Union[str, Path]) -> bool:
        """Delete a single recording file.

        Returns:
            True if deleted, False if missing, not a recording, or not removable
        """
        path = Path(recording_path)
        if not naming.is_recording_file(path) or not path.is_file():
            return False
        try:
            path.unlink()
        except OSError as e:
            logger.error(f"Failed to delete recording: {e}")
            return False
        logger.info(f"Deleted recording: {path}")
        return True

    @staticmethod
    def recording_age_days(recording_path: Union[str, Path], now: Optional[float] = None) -> int:
        """Whole days since the file was last modified, 0 if it can't be read."""
        reference = time.time() if now is None else now
        try:
            age = reference - Path(recording_path).stat().st_mtime
        except OSError:
            return 0
        return int(max(0.0, age) // SECONDS_PER_DAY)

    @staticmethod
    def _iter_files(directory: Path) -> List[Path]:
        if not directory.is_dir():
            return []
        try:
            return [path for path in directory.iterdir() if path.is_file()]
        except OSError as e:
            logger.error(f"Failed to read {directory}: {e}")
            return []
