"""Pytest configuration and fixtures for Notes4Me tests."""

import os
import sys
import time
import uuid
import json
import asyncio
import logging
import tempfile
import threading
from pathlib import Path
from typing import Callable, List, Optional

import pytest
from aiohttp import web
from aiohttp.test_utils import unused_port

from notes4me.config import Notes4MeConfig
from notes4me.models.pipeline import EventType, PipelineEvent


# Configure logging for tests
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 24 * 60 * 60


def pytest_configure(config):
    config.addinivalue_line("markers", "unit: fast tests without external tools")
    config.addinivalue_line("markers", "integration: tests that run fake external tools end to end")
    config.addinivalue_line("markers", "hardware: tests that need real sox, whisper.cpp and Ollama")


def wait_for(predicate: Callable[[], bool], timeout: float = 5.0, interval: float = 0.02) -> bool:
    """Poll ``predicate`` until it is true or the timeout expires."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


@pytest.fixture
def temp_data_dir():
    """Create temporary directory for test data."""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield temp_dir


@pytest.fixture
def restore_logging():
    """Put the root logger back after code that reconfigures it."""
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def test_config(temp_data_dir):
    """Settings pointing at the temp directory, auto-process off."""
    config = Notes4MeConfig()
    config.set('storage.output_directory', str(Path(temp_data_dir) / "output"))
    config.set('pipeline.auto_process', False)
    config.set('logging.console_output', False)
    return config


@pytest.fixture
def make_executable(temp_data_dir):
    """Write a small Python script as an executable standing in for an external tool."""
    bin_dir = Path(temp_data_dir) / "bin"
    bin_dir.mkdir(exist_ok=True)

    def _make(name: str, body: str) -> Path:
        path = bin_dir / name
        path.write_text(f"#!{sys.executable}\n{body}")
        path.chmod(0o755)
        return path

    return _make


FAKE_SOX_RECORD = '''
import signal, sys, time
path = sys.argv[-1]
signal.signal(signal.SIGTERM, lambda signum, frame: sys.exit(0))
# sox also finalizes the file and exits 0 on Ctrl+C
signal.signal(signal.SIGINT, lambda signum, frame: sys.exit(0))
with open(path, "wb") as f:
    f.write(b"RIFF" + b"\\0" * 40)
    f.flush()
    while True:
        f.write(b"\\0" * 4096)
        f.flush()
        time.sleep(0.05)
'''

FAKE_SOX_EMPTY = '''
import signal, sys, time
path = sys.argv[-1]
signal.signal(signal.SIGTERM, lambda signum, frame: sys.exit(0))
open(path, "wb").close()
while True:
    time.sleep(0.05)
'''

FAKE_SOX_CRASH = '''
import sys
sys.stderr.write("sox FAIL formats: can't open input `BlackHole 2ch': Permission denied\\n")
sys.exit(2)
'''


@pytest.fixture
def fake_sox(make_executable):
    """Factory for fake sox executables: 'record', 'empty' or 'crash'."""
    scripts = {"record": FAKE_SOX_RECORD, "empty": FAKE_SOX_EMPTY, "crash": FAKE_SOX_CRASH}

    def _make(mode: str = "record") -> Path:
        return make_executable(f"sox-{mode}", scripts[mode])

    return _make


FAKE_WHISPER = '''
import sys
args = sys.argv[1:]
prefix = args[args.index("-of") + 1]
for value in {progress!r}:
    sys.stderr.write("whisper_print_progress_callback: progress = %d%%\\n" % value)
    sys.stderr.flush()
sys.stderr.write({diagnostics!r})
print("[00:00:00.000 --> 00:00:02.000]  transcribing")
if {write_output!r}:
    with open(prefix + ".txt", "w") as f:
        f.write({text!r})
sys.exit({exit_code!r})
'''


@pytest.fixture
def fake_whisper(make_executable):
    """Factory for a fake whisper.cpp CLI that writes ``<prefix>.txt``."""
    counter = {"n": 0}

    def _make(text: str = "Alice: let's ship the release on Friday.\n",
              exit_code: int = 0,
              progress: Optional[List[int]] = None,
              write_output: bool = True,
              diagnostics: str = "") -> Path:
        counter["n"] += 1
        body = FAKE_WHISPER.format(
            progress=progress if progress is not None else [0, 10, 10, 10, 42, 42, 100],
            diagnostics=diagnostics,
            write_output=write_output,
            text=text,
            exit_code=exit_code,
        )
        return make_executable(f"whisper-{counter['n']}", body)

    return _make


@pytest.fixture
def whisper_model(temp_data_dir):
    path = Path(temp_data_dir) / "models" / "ggml-base.en.bin"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(b"ggml")
    return path


@pytest.fixture
def make_file():
    """Create a file with the given size and age in days."""
    def _make(path: Path, size: int = 1024, age_days: float = 0.0, content: Optional[bytes] = None) -> Path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content if content is not None else b"\0" * size)
        if age_days:
            mtime = time.time() - age_days * SECONDS_PER_DAY
            os.utime(path, (mtime, mtime))
        return path

    return _make


class FakeOllama:
    """In-process stand-in for the Ollama HTTP API."""

    def __init__(self):
        self.models = [{"name": "llama3.2:latest"}]
        self.tags_status = 200
        self.tags_delay = 0.0
        self.generate_status = 200
        self.lines = [
            json.dumps({"response": "# Meeting Notes", "done": False}),
            json.dumps({"response": "\n\n## Action Items\n- Alice ships Friday", "done": False}),
            json.dumps({"response": "", "done": True}),
        ]
        self.generate_requests: List[dict] = []
        self.base_url = ""

    @property
    def expected_text(self) -> str:
        return "".join(json.loads(line).get("response", "") for line in self.lines
                       if line.startswith("{"))

    async def tags(self, request: web.Request) -> web.StreamResponse:
        if self.tags_delay:
            await asyncio.sleep(self.tags_delay)
        return web.json_response({"models": self.models}, status=self.tags_status)

    async def generate(self, request: web.Request) -> web.StreamResponse:
        self.generate_requests.append(await request.json())
        if self.generate_status != 200:
            return web.Response(status=self.generate_status, text="model runner crashed")

        response = web.StreamResponse(headers={"Content-Type": "application/x-ndjson"})
        await response.prepare(request)
        for line in self.lines:
            await response.write(line.encode("utf-8") + b"\n")
        await response.write_eof()
        return response

    def build_app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/api/tags", self.tags)
        app.router.add_post("/api/generate", self.generate)
        return app


@pytest.fixture
def ollama_server():
    """Serve a FakeOllama on a loopback port from a background event loop."""
    fake = FakeOllama()
    loop = asyncio.new_event_loop()
    runner = web.AppRunner(fake.build_app())
    port = unused_port()

    loop.run_until_complete(runner.setup())
    loop.run_until_complete(web.TCPSite(runner, "127.0.0.1", port).start())
    thread = threading.Thread(target=loop.run_forever, daemon=True)
    thread.start()

    fake.base_url = f"http://127.0.0.1:{port}"
    yield fake

    asyncio.run_coroutine_threadsafe(runner.cleanup(), loop).result(timeout=5)
    loop.call_soon_threadsafe(loop.stop)
    thread.join(timeout=5)
    loop.close()


class EventCollector:
    """pubsub listener that keeps every PipelineEvent it hears.

    pubsub holds listeners weakly, so tests keep the collector alive.
    """

    def __init__(self):
        self.events: List[PipelineEvent] = []
        self._lock = threading.Lock()

    def on_event(self, event: PipelineEvent) -> None:
        with self._lock:
            self.events.append(event)

    def of_type(self, event_type: EventType) -> List[PipelineEvent]:
        with self._lock:
            return [e for e in self.events if e.event_type == event_type]


@pytest.fixture
def topic_prefix():
    """Unique topic prefix so pubsub subscriptions don't leak between tests."""
    return f"test_{uuid.uuid4().hex}"


@pytest.fixture
def event_collector():
    return EventCollector()
