"""Unit tests for SummarizationJob against a fake Ollama server."""

import json
import asyncio
import pytest
from pathlib import Path
from aiohttp.test_utils import unused_port

from notes4me.errors import (
    ServiceUnavailableError,
    NoModelsInstalledError,
    TranscriptNotFoundError,
    EmptyTranscriptError,
    EmptyGenerationError,
    GenerationError,
)
from notes4me.summarization.ollama import SummarizationJob
from notes4me.summarization.prompts import build_notes_prompt


@pytest.fixture
def transcript(temp_data_dir):
    path = Path(temp_data_dir) / "processed" / "2025-11-20_15-50-22_recording_transcript.txt"
    path.parent.mkdir(parents=True)
    path.write_text("Alice: we ship on Friday. Bob: I'll update the {changelog}.\n")
    return path


@pytest.mark.unit
class TestHealthCheck:
    """Test cases for the Ollama health probe."""

    def test_healthy(self, ollama_server):
        job = SummarizationJob(base_url=ollama_server.base_url)
        assert asyncio.run(job.check_health()) == ["llama3.2:latest"]

    def test_no_models(self, ollama_server):
        ollama_server.models = []
        job = SummarizationJob(base_url=ollama_server.base_url)

        with pytest.raises(NoModelsInstalledError) as exc_info:
            asyncio.run(job.check_health())
        assert "ollama pull llama3.2" in str(exc_info.value)

    def test_non_200(self, ollama_server):
        ollama_server.tags_status = 500
        job = SummarizationJob(base_url=ollama_server.base_url)

        with pytest.raises(ServiceUnavailableError):
            asyncio.run(job.check_health())

    def test_unreachable(self):
        job = SummarizationJob(base_url=f"http://127.0.0.1:{unused_port()}")

        with pytest.raises(ServiceUnavailableError) as exc_info:
            asyncio.run(job.check_health())
        assert "ollama serve" in str(exc_info.value)
        assert "brew install ollama" in str(exc_info.value)

    def test_timeout(self, ollama_server):
        ollama_server.tags_delay = 1.0
        job = SummarizationJob(base_url=ollama_server.base_url, health_timeout=0.2)

        with pytest.raises(ServiceUnavailableError):
            asyncio.run(job.check_health())

    def test_other_model_only_still_healthy(self, ollama_server):
        ollama_server.models = [{"name": "mistral:7b"}]
        job = SummarizationJob(base_url=ollama_server.base_url)
        assert asyncio.run(job.check_health()) == ["mistral:7b"]

    def test_list_models(self, ollama_server):
        job = SummarizationJob(base_url=ollama_server.base_url)
        assert asyncio.run(job.list_models()) == [{"name": "llama3.2:latest"}]

    def test_list_models_unreachable(self):
        job = SummarizationJob(base_url=f"http://127.0.0.1:{unused_port()}")
        assert asyncio.run(job.list_models()) == []


@pytest.mark.unit
class TestGenerateNotes:
    """Test cases for streamed notes generation."""

    def test_generate_notes(self, ollama_server, transcript):
        job = SummarizationJob(base_url=ollama_server.base_url)
        progress = []

        notes_path = asyncio.run(job.generate_notes(str(transcript), progress_callback=progress.append))

        assert notes_path == transcript.parent / "2025-11-20_15-50-22_recording_notes.md"
        assert notes_path.read_text() == ollama_server.expected_text
        assert progress == [15, len(ollama_server.expected_text)]

    def test_request_payload(self, ollama_server, transcript):
        job = SummarizationJob(base_url=ollama_server.base_url, model="llama3.2")

        asyncio.run(job.generate_notes(str(transcript)))

        request = ollama_server.generate_requests[0]
        assert request["model"] == "llama3.2"
        assert request["stream"] is True
        assert request["options"] == {"temperature": 0.7, "top_p": 0.9, "top_k": 40}
        assert request["prompt"] == build_notes_prompt(transcript.read_text())
        assert transcript.read_text() in request["prompt"]

    def test_malformed_lines_skipped(self, ollama_server, transcript):
        ollama_server.lines = [
            json.dumps({"response": "Hello"}),
            "not json at all",
            json.dumps({"response": " world", "done": True}),
        ]
        job = SummarizationJob(base_url=ollama_server.base_url)
        progress = []

        notes_path = asyncio.run(job.generate_notes(str(transcript), progress_callback=progress.append))

        assert notes_path.read_text() == "Hello world"
        assert progress == [5, 11]

    def test_error_field(self, ollama_server, transcript):
        ollama_server.lines = [json.dumps({"error": "model 'llama3.2' not found"})]
        job = SummarizationJob(base_url=ollama_server.base_url)

        with pytest.raises(GenerationError) as exc_info:
            asyncio.run(job.generate_notes(str(transcript)))

        assert "not found" in str(exc_info.value)
        assert not (transcript.parent / "2025-11-20_15-50-22_recording_notes.md").exists()

    def test_generate_non_200(self, ollama_server, transcript):
        ollama_server.generate_status = 500
        job = SummarizationJob(base_url=ollama_server.base_url)

        with pytest.raises(GenerationError):
            asyncio.run(job.generate_notes(str(transcript)))

    def test_empty_generation(self, ollama_server, transcript):
        ollama_server.lines = [json.dumps({"response": "   \n", "done": True})]
        job = SummarizationJob(base_url=ollama_server.base_url)

        with pytest.raises(EmptyGenerationError):
            asyncio.run(job.generate_notes(str(transcript)))
        assert not (transcript.parent / "2025-11-20_15-50-22_recording_notes.md").exists()

    def test_whitespace_transcript(self, ollama_server, transcript):
        transcript.write_text("   \n\t\n")
        job = SummarizationJob(base_url=ollama_server.base_url)

        with pytest.raises(EmptyTranscriptError):
            asyncio.run(job.generate_notes(str(transcript)))

        assert ollama_server.generate_requests == []
        assert list(transcript.parent.glob("*_notes.md")) == []

    def test_missing_transcript(self, ollama_server, temp_data_dir):
        job = SummarizationJob(base_url=ollama_server.base_url)

        with pytest.raises(TranscriptNotFoundError):
            asyncio.run(job.generate_notes(str(Path(temp_data_dir) / "missing_transcript.txt")))

    def test_transcript_checked_before_health(self, temp_data_dir):
        job = SummarizationJob(base_url=f"http://127.0.0.1:{unused_port()}")

        with pytest.raises(TranscriptNotFoundError):
            asyncio.run(job.generate_notes(str(Path(temp_data_dir) / "missing_transcript.txt")))

    def test_service_down(self, transcript):
        job = SummarizationJob(base_url=f"http://127.0.0.1:{unused_port()}")

        with pytest.raises(ServiceUnavailableError):
            asyncio.run(job.generate_notes(str(transcript)))

    def test_stream_notes_fragments(self, ollama_server):
        job = SummarizationJob(base_url=ollama_server.base_url)
        fragments = []

        text = asyncio.run(job.stream_notes("Some transcript", fragment_callback=fragments.append))

        assert "".join(fragments) == text == ollama_server.expected_text

    @pytest.mark.parametrize("length,expected", [
        (0, 0),
        (4, 1),
        (800, 4),
        (10000, 50),
        (10001, 51),
    ])
    def test_estimate_time(self, length, expected):
        assert SummarizationJob.estimate_time(length) == expected


@pytest.mark.unit
def test_prompt_embeds_transcript_verbatim():
    text = "Use {braces} and 100% of the time"
    prompt = build_notes_prompt(text)

    assert text in prompt
    assert "Action Items" in prompt
    assert "Next Steps" in prompt
    assert "{sections}" not in prompt
