"""Speech-to-text transcription of recordings."""

from .progress import ProgressParser
from .whisper import TranscriptionJob, find_whisper_binary, find_whisper_model

__all__ = [
    "ProgressParser",
    "TranscriptionJob",
    "find_whisper_binary",
    "find_whisper_model",
]
