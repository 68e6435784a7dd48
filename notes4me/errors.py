"""Error taxonomy for the recording, transcription and summarization pipeline.

Every error carries a stable ``kind`` and a human readable message whose first
line is suitable for a notification. Later lines hold remediation hints
(install commands, setup steps) and diagnostic output.
"""

from typing import Optional


class Notes4MeError(Exception):
    """Base class for all pipeline errors."""

    kind = "Notes4MeError"

    @property
    def summary(self) -> str:
        """First line of the message, for notifications."""
        message = str(self)
        return message.splitlines()[0] if message else self.kind


# Capture

class CaptureError(Notes4MeError):
    kind = "CaptureError"


class AlreadyActiveError(CaptureError):
    kind = "AlreadyActive"


class NotRecordingError(CaptureError):
    kind = "NotRecording"


class DeviceNotFoundError(CaptureError):
    kind = "DeviceNotFound"


class EmptyRecordingError(CaptureError):
    kind = "EmptyRecording"


class CaptureFailedError(CaptureError):
    """The capture subprocess exited while it was supposed to be recording."""

    kind = "CaptureFailed"

    def __init__(self, message: str, exit_code: Optional[int] = None):
        super().__init__(message)
        self.exit_code = exit_code


# Transcription

class TranscriptionError(Notes4MeError):
    kind = "TranscriptionError"


class BinaryNotFoundError(TranscriptionError):
    kind = "BinaryNotFound"


class ModelNotFoundError(TranscriptionError):
    kind = "ModelNotFound"


class SourceNotFoundError(TranscriptionError):
    kind = "SourceNotFound"


class EngineFailureError(TranscriptionError):
    """The speech-to-text engine failed to start or exited non-zero."""

    kind = "EngineFailure"

    def __init__(self, message: str, exit_code: Optional[int] = None, diagnostics: str = ""):
        super().__init__(message)
        self.exit_code = exit_code
        self.diagnostics = diagnostics


class EmptyTranscriptError(TranscriptionError):
    """Raised for a blank transcript, both by transcription and summarization."""

    kind = "EmptyTranscript"


# Summarization

class SummarizationError(Notes4MeError):
    kind = "SummarizationError"


class ServiceUnavailableError(SummarizationError):
    kind = "ServiceUnavailable"


class NoModelsInstalledError(SummarizationError):
    kind = "NoModelsInstalled"


class TranscriptNotFoundError(SummarizationError):
    kind = "TranscriptNotFound"


class EmptyGenerationError(SummarizationError):
    kind = "EmptyGeneration"


class GenerationError(SummarizationError):
    """Error reported by the generation service itself."""

    kind = "GenerationError"
