"""Structured notes generation from transcripts."""

from .ollama import SummarizationJob, OLLAMA_BASE_URL, DEFAULT_MODEL
from .prompts import build_notes_prompt

__all__ = ["SummarizationJob", "OLLAMA_BASE_URL", "DEFAULT_MODEL", "build_notes_prompt"]
