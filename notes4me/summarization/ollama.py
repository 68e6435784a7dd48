"""Meeting notes generation through a local Ollama service."""

import asyncio
import json
import math
import logging
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import aiohttp

from ..errors import (
    ServiceUnavailableError,
    NoModelsInstalledError,
    TranscriptNotFoundError,
    EmptyTranscriptError,
    EmptyGenerationError,
    GenerationError,
)
from ..storage import naming
from .prompts import build_notes_prompt

logger = logging.getLogger(__name__)

OLLAMA_BASE_URL = "http://localhost:11434"
DEFAULT_MODEL = "llama3.2"
HEALTH_TIMEOUT_SECONDS = 3.0

# Fixed sampling so repeated runs over the same transcript stay comparable
GENERATION_OPTIONS = {
    "temperature": 0.7,
    "top_p": 0.9,
    "top_k": 40,
}

# Rough estimate: 4 chars per token, 50 tokens/sec for llama3.2 on Apple Silicon
CHARS_PER_TOKEN = 4
TOKENS_PER_SECOND = 50

START_INSTRUCTIONS = (
    "Please start Ollama:\n"
    "  ollama serve\n"
    "Or install it:\n"
    "  brew install ollama"
)


class SummarizationJob:
    """Streams structured notes for a transcript from Ollama."""

    def __init__(
        self,
        base_url: str = OLLAMA_BASE_URL,
        model: str = DEFAULT_MODEL,
        health_timeout: float = HEALTH_TIMEOUT_SECONDS,
    ):
        """Initialize summarization job.

        Args:
            base_url: Loopback URL of the Ollama service
            model: Model used for generation
            health_timeout: Seconds allowed for the health probe
        """
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.health_timeout = health_timeout

        logger.info(f"SummarizationJob initialized with model: {model} at {self.base_url}")

    async def _fetch_tags(self) -> Dict[str, Any]:
        timeout = aiohttp.ClientTimeout(total=self.health_timeout)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            async with session.get(f"{self.base_url}/api/tags") as response:
                if response.status != 200:
                    raise ServiceUnavailableError(
                        f"Ollama returned status {response.status}\n{START_INSTRUCTIONS}")
                return await response.json(content_type=None)

    async def check_health(self) -> List[str]:
        """Verify Ollama is reachable and has at least one model.

        Returns:
            Names of the installed models

        Raises:
            ServiceUnavailableError: If Ollama is unreachable or times out
            NoModelsInstalledError: If Ollama has no models
        """
        try:
            data = await self._fetch_tags()
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise ServiceUnavailableError(f"Ollama not available.\n{START_INSTRUCTIONS}") from e

        models = data.get("models") if isinstance(data, dict) else None
        if not models:
            raise NoModelsInstalledError(
                "No Ollama models found.\n"
                f"Install a model with: ollama pull {self.model}")

        names = [m.get("name", "") for m in models if isinstance(m, dict)]
        if not any(name == self.model or name.startswith(f"{self.model}:") for name in names):
            logger.warning(f"Preferred model ({self.model}) not found. Available models: {', '.join(names)}")
        return names

    async def list_models(self) -> List[Dict[str, Any]]:
        """List installed models. Best effort: returns [] on any failure."""
        try:
            data = await self._fetch_tags()
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError, ServiceUnavailableError) as e:
            logger.error(f"Failed to list Ollama models: {e}")
            return []
        return list(data.get("models") or []) if isinstance(data, dict) else []

    async def generate_notes(self, transcript_path: str,
                             progress_callback: Optional[Callable[[int], None]] = None) -> Path:
        """Generate meeting notes next to the transcript.

        Args:
            transcript_path: Transcript text file
            progress_callback: Called with the running count of generated characters

        Returns:
            Path to the notes markdown file

        Raises:
            TranscriptNotFoundError: If the transcript does not exist
            EmptyTranscriptError: If the transcript is blank
            ServiceUnavailableError / NoModelsInstalledError: If the health probe fails
            GenerationError: If Ollama reports an error
            EmptyGenerationError: If nothing was generated
        """
        transcript_path = Path(transcript_path)
        transcript = self.read_transcript(transcript_path)
        output_path = naming.notes_path_for(transcript_path)

        await self.check_health()

        logger.info(f"Generating notes from transcript: {transcript_path}")
        logger.info(f"Output will be saved to: {output_path}")

        notes = await self.stream_notes(transcript, progress_callback=progress_callback)
        if not notes.strip():
            raise EmptyGenerationError("Ollama returned empty response")

        output_path.write_text(notes, encoding="utf-8")
        logger.info(f"Notes generated successfully: {output_path} ({len(notes)} characters)")
        return output_path

    @staticmethod
    def read_transcript(transcript_path: Path) -> str:
        """Read a transcript, rejecting missing or blank files."""
        if not transcript_path.exists():
            raise TranscriptNotFoundError(f"Transcript file not found: {transcript_path}")

        transcript = transcript_path.read_text(encoding="utf-8", errors="replace")
        if not transcript.strip():
            raise EmptyTranscriptError("Transcript is empty. Cannot generate notes from empty transcript.")
        return transcript

    async def stream_notes(
        self,
        transcript: str,
        progress_callback: Optional[Callable[[int], None]] = None,
        fragment_callback: Optional[Callable[[str], None]] = None,
    ) -> str:
        """Send the notes prompt and accumulate the streamed response.

        Args:
            transcript: Full transcript text, embedded verbatim
            progress_callback: Called with the running character count
            fragment_callback: Called with each text fragment as it arrives

        Returns:
            The complete generated text
        """
        payload = {
            "model": self.model,
            "prompt": build_notes_prompt(transcript),
            "stream": True,
            "options": dict(GENERATION_OPTIONS),
        }

        parts: List[str] = []
        char_count = 0
        # No total timeout: long transcripts legitimately take minutes
        timeout = aiohttp.ClientTimeout(total=None, sock_connect=self.health_timeout)

        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.post(f"{self.base_url}/api/generate", json=payload) as response:
                    if response.status != 200:
                        error_text = await response.text()
                        raise GenerationError(
                            f"Ollama request failed with status {response.status}\n{error_text}".rstrip())

                    async for raw_line in response.content:
                        message = self._parse_line(raw_line)
                        if message is None:
                            continue

                        if message.get("error"):
                            raise GenerationError(f"Ollama error: {message['error']}")

                        fragment = message.get("response")
                        if fragment:
                            parts.append(fragment)
                            char_count += len(fragment)
                            self._notify(fragment_callback, fragment)
                            self._notify(progress_callback, char_count)

                        if message.get("done"):
                            break
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise ServiceUnavailableError(
                f"Failed to connect to Ollama. Ensure Ollama is running: ollama serve\n{e}".rstrip()) from e

        return "".join(parts)

    @staticmethod
    def _parse_line(raw_line: bytes) -> Optional[Dict[str, Any]]:
        line = raw_line.decode("utf-8", errors="replace").strip()
        if not line:
            return None
        try:
            message = json.loads(line)
        except ValueError:
            logger.warning(f"Failed to parse JSON line: {line[:200]}")
            return None
        return message if isinstance(message, dict) else None

    @staticmethod
    def _notify(callback: Optional[Callable[[Any], None]], value: Any) -> None:
        if callback is None:
            return
        try:
            callback(value)
        except Exception as e:
            logger.error(f"Summarization progress callback failed: {e}")

    @staticmethod
    def estimate_time(transcript_length: int) -> int:
        """Advisory generation time in whole seconds for a transcript of the given length."""
        estimated_tokens = math.ceil(transcript_length / CHARS_PER_TOKEN)
        return math.ceil(estimated_tokens / TOKENS_PER_SECOND)
