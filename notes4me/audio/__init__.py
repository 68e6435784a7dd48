"""System audio capture."""

from .capture import CaptureSession
from .devices import find_capture_device

__all__ = ["CaptureSession", "find_capture_device"]
