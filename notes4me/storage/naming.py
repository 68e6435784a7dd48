"""Filename convention joining recordings to their transcripts and notes.

There is no index: a recording, its transcript and its notes are tied together
purely by filename. This module is the only place the convention is defined.

    recordings/2025-11-20_15-50-22_recording.wav
    processed/2025-11-20_15-50-22_recording_transcript.txt
    processed/2025-11-20_15-50-22_recording_notes.md
"""

from datetime import datetime
from pathlib import Path
from typing import Optional, Union

RECORDINGS_DIRNAME = "recordings"
PROCESSED_DIRNAME = "processed"
TEMP_DIRNAME = "temp"

RECORDING_SUFFIX = "_recording.wav"
AUDIO_EXTENSION = ".wav"
TRANSCRIPT_SUFFIX = "_transcript.txt"
TRANSCRIPT_EXTENSION = ".txt"
NOTES_SUFFIX = "_notes.md"

TIMESTAMP_FORMAT = "%Y-%m-%d_%H-%M-%S"
TIMESTAMP_LENGTH = len("YYYY-MM-DD_HH-MM-SS")

PathLike = Union[str, Path]


def recording_filename(timestamp: datetime) -> str:
    """Build the recording filename for a capture started at ``timestamp``."""
    return f"{timestamp.strftime(TIMESTAMP_FORMAT)}{RECORDING_SUFFIX}"


def parse_recording_timestamp(path: PathLike) -> Optional[datetime]:
    """Parse the fixed-width timestamp token at the start of a recording name.

    Returns:
        The timestamp, or None if the name does not follow the convention
    """
    name = Path(path).name
    if not name.endswith(RECORDING_SUFFIX):
        return None
    token = name[:TIMESTAMP_LENGTH]
    try:
        return datetime.strptime(token, TIMESTAMP_FORMAT)
    except ValueError:
        return None


def is_recording_file(path: PathLike) -> bool:
    return Path(path).name.endswith(AUDIO_EXTENSION)


def recording_stem(path: PathLike) -> str:
    """Join key shared by a recording and its derived files."""
    name = Path(path).name
    if name.endswith(AUDIO_EXTENSION):
        return name[:-len(AUDIO_EXTENSION)]
    return name


def transcript_filename(recording: PathLike) -> str:
    return f"{recording_stem(recording)}{TRANSCRIPT_SUFFIX}"


def transcript_path_for(recording: PathLike, processed_dir: PathLike) -> Path:
    return Path(processed_dir) / transcript_filename(recording)


def transcript_output_prefix(recording: PathLike, processed_dir: PathLike) -> Path:
    """Prefix handed to the transcription engine, which appends ``.txt``."""
    transcript = transcript_path_for(recording, processed_dir)
    return transcript.with_name(transcript.name[:-len(TRANSCRIPT_EXTENSION)])


def notes_path_for(transcript: PathLike) -> Path:
    """Derive the notes path by literal suffix substitution.

    Files outside the convention get their extension swapped instead, so the
    notes never overwrite the input text.
    """
    transcript = Path(transcript)
    name = transcript.name
    if name.endswith(TRANSCRIPT_SUFFIX):
        return transcript.with_name(name[:-len(TRANSCRIPT_SUFFIX)] + NOTES_SUFFIX)
    return transcript.with_name(transcript.stem + NOTES_SUFFIX)


def is_transcript_file(path: PathLike) -> bool:
    return Path(path).name.endswith(TRANSCRIPT_SUFFIX)


def is_notes_file(path: PathLike) -> bool:
    return Path(path).name.endswith(NOTES_SUFFIX)
