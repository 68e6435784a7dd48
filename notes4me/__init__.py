"""Notes4Me: record system audio, transcribe it locally and turn it into meeting notes."""

__version__ = "0.1.0"
