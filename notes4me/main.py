"""Command line entry point for Notes4Me."""

import sys
import time
import asyncio
import argparse
import logging
from pathlib import Path
from typing import Optional

import yaml
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .config import Notes4MeConfig, load_config, DEFAULT_CONFIG_FILENAME
from .audio.devices import list_audio_devices
from .errors import Notes4MeError
from .models.pipeline import EventType, PipelineEvent, PipelineStage
from .services.pipeline import PipelineCoordinator
from .storage.artifact_store import format_bytes

logger = logging.getLogger(__name__)

console = Console()


class ProgressPrinter:
    """Prints pipeline events to the console while a command waits on them."""

    def __init__(self, console: Console):
        self.console = console
        self.last_chars = 0

    def on_event(self, event: PipelineEvent) -> None:
        name = event.recording_path.name if event.recording_path else ""
        if event.event_type == EventType.PROGRESS:
            if event.stage == PipelineStage.TRANSCRIBING and event.progress is not None:
                self.console.print(f"📝 Transcribing {name}: {event.progress}%", style="blue")
            elif event.stage == PipelineStage.SUMMARIZING and event.chars_emitted is not None:
                # One line per ~500 chars is plenty
                if event.chars_emitted == 0 or event.chars_emitted - self.last_chars >= 500:
                    self.last_chars = event.chars_emitted
                    self.console.print(f"🤖 Generating notes for {name}: {event.chars_emitted} chars", style="blue")
        elif event.event_type == EventType.COMPLETED:
            self.console.print(f"✅ {event.message}", style="green")
        elif event.event_type == EventType.FAILED:
            self.console.print(f"❌ {event.stage.value.capitalize()} failed: {event.message}", style="red")
        elif event.event_type == EventType.WARNING:
            self.console.print(f"⚠️  {event.message}", style="yellow")


class App:
    """Wires configuration, logging and the pipeline coordinator for one CLI run."""

    def __init__(self, config_path: Optional[str], log_level: Optional[str] = None):
        # Load configuration
        self.config = load_config(config_path)
        # Set up logging (override config with command line if specified)
        setup_logging(self.config, log_level or self.config.get('logging.level', 'INFO'))
        self._coordinator: Optional[PipelineCoordinator] = None
        self.printer = ProgressPrinter(console)

    @property
    def coordinator(self) -> PipelineCoordinator:
        if self._coordinator is None:
            self._coordinator = PipelineCoordinator(self.config)
            self._coordinator.publisher.subscribe_all(self.printer.on_event)
        return self._coordinator

    def record(self, duration: Optional[int]) -> None:
        started = self.coordinator.start_recording()
        console.print(f"🔴 Recording to {started.file_path}", style="bold red")
        console.print("Press Ctrl+C to stop" if not duration else f"Recording for {duration}s")

        try:
            if duration:
                time.sleep(duration)
            else:
                while self.coordinator.capture.is_recording:
                    time.sleep(1)
        except KeyboardInterrupt:
            console.print()

        if not self.coordinator.capture.is_recording:
            # sox exited on its own; the failure event has already been printed
            raise SystemExit(1)

        result = self.coordinator.stop_recording()
        console.print(
            f"⏹️  Saved {result.file_path.name} ({result.duration_seconds:.1f}s, {format_bytes(result.size_bytes)})",
            style="bold yellow")

        if self.config.get_auto_process():
            self.coordinator.wait_for_background()

    def process(self, path: str) -> None:
        result = self.coordinator.process_recording(path)
        console.print(f"Transcript: {result.transcript_path}")
        console.print(f"Notes:      {result.notes_path}")

    def transcribe(self, path: str) -> None:
        console.print(f"Transcript: {self.coordinator.transcribe(path)}")

    def summarize(self, path: str, print_only: bool) -> None:
        if print_only:
            asyncio.run(self._print_summary(Path(path)))
            return
        console.print(f"Notes: {self.coordinator.summarize(path)}")

    async def _print_summary(self, transcript_path: Path) -> None:
        summarizer = self.coordinator.summarizer
        transcript = summarizer.read_transcript(transcript_path)
        await summarizer.check_health()
        console.print(Panel(f"{transcript_path.name} ({len(transcript)} characters)", title="Summarising"))

        def echo(fragment: str) -> None:
            console.print(fragment, end="", markup=False, highlight=False)

        await summarizer.stream_notes(transcript, fragment_callback=echo)
        console.print()

    def list_recordings(self) -> None:
        recordings = self.coordinator.list_recordings()
        if not recordings:
            console.print("No recordings found.", style="yellow")
            return

        table = Table(title="Recordings")
        table.add_column("Recording")
        table.add_column("Size", justify="right")
        table.add_column("Age (days)", justify="right")
        table.add_column("Transcript", justify="center")
        table.add_column("Notes", justify="center")
        for recording in recordings:
            table.add_row(
                recording.filename,
                format_bytes(recording.size_bytes),
                str(recording.age_days),
                "✅" if recording.has_transcript else "-",
                "✅" if recording.has_notes else "-",
            )
        console.print(table)

    def stats(self) -> None:
        stats = self.coordinator.storage_stats()
        table = Table(title=f"Storage: {self.config.get_output_directory()}")
        table.add_column("Metric")
        table.add_column("Value", justify="right")
        table.add_row("Total size", stats.total_size_formatted)
        table.add_row("Recordings", str(stats.recording_count))
        table.add_row("Transcripts", str(stats.transcript_count))
        table.add_row("Notes", str(stats.notes_count))
        table.add_row("Retention (days)", str(self.config.get_retention_policy().days))
        console.print(table)

    def cleanup(self) -> None:
        deleted = self.coordinator.run_cleanup()
        if not deleted:
            console.print("No recordings older than the retention window.")
        for name in deleted:
            console.print(f"🗑️  {name}")

    def delete(self, name: str) -> None:
        deleted = self.coordinator.delete_recording(name)
        if not deleted:
            console.print(f"Nothing to delete for {name}", style="yellow")
            raise SystemExit(1)
        for filename in deleted:
            console.print(f"🗑️  {filename}")

    def check(self) -> None:
        status = self.coordinator.check_dependencies()
        table = Table(title="Dependencies")
        table.add_column("Component")
        table.add_column("Status", justify="center")
        table.add_column("Details")
        for name, available in (("sox", status.sox), ("whisper", status.whisper), ("ollama", status.ollama)):
            detail = status.details.get(name) or ""
            table.add_row(name, "✅" if available else "❌", detail.splitlines()[0] if detail else "")
        console.print(table)

        if status.sox:
            devices = list_audio_devices()
            console.print(f"Audio devices: {', '.join(devices) if devices else 'none reported'}")
        if status.ollama:
            models = asyncio.run(self.coordinator.summarizer.list_models())
            console.print("Ollama models:")
            for model in models:
                console.print(f"  🤖 {model.get('name', '?')} ({format_bytes(model.get('size') or 0)})")

        if not status.all_available:
            raise SystemExit(1)

    def config_get(self, key: str) -> None:
        value = self.config.get(key)
        console.print(yaml.safe_dump(value, default_flow_style=False).strip() if isinstance(value, dict) else str(value))

    def config_set(self, key: str, raw_value: str) -> None:
        value = yaml.safe_load(raw_value)
        self.config.set(key, value)
        target = self.config.config_file or Path.home() / ".config" / "notes4me" / DEFAULT_CONFIG_FILENAME
        path = self.config.save(str(target))
        console.print(f"{key} = {value!r} (saved to {path})")

    def shutdown(self) -> None:
        if self._coordinator is not None:
            self._coordinator.publisher.unsubscribe_all(self.printer.on_event)
            self._coordinator.shutdown()


def setup_logging(config: Notes4MeConfig, level: str = "INFO") -> None:
    """Set up logging configuration from YAML config."""
    log_file_path = config.get_log_file_path()
    console_output = config.get('logging.console_output', True)

    # Create logs directory if it doesn't exist
    log_file_path.parent.mkdir(parents=True, exist_ok=True)

    handlers = []

    # File handler - always write to file
    file_handler = logging.FileHandler(log_file_path)
    file_handler.setLevel(logging.DEBUG)
    file_formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s'
    )
    file_handler.setFormatter(file_formatter)
    handlers.append(file_handler)

    # Console handler - only if enabled in config
    if console_output:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(logging.WARNING)  # Only show warnings and above on console
        console_formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
        console_handler.setFormatter(console_formatter)
        handlers.append(console_handler)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(getattr(logging, level.upper()))
    for handler in handlers:
        root_logger.addHandler(handler)

    logger.info("=" * 50)
    logger.info("Notes4Me starting up")
    logger.info(f"Log file: {log_file_path}")
    logger.info(f"Log level set to: {level}")
    logger.info("=" * 50)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="notes4me",
        description="Notes4Me - record meetings, transcribe locally, and generate notes",
    )
    parser.add_argument(
        "--config",
        type=str,
        help=f"Path to configuration YAML file (default: looks for {DEFAULT_CONFIG_FILENAME})"
    )
    parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Set logging level (default: from config, INFO)"
    )
    parser.add_argument(
        "--version",
        action="version",
        version="Notes4Me v0.1.0"
    )

    commands = parser.add_subparsers(dest="command", required=True)

    record = commands.add_parser("record", help="Record system audio until Ctrl+C or for a fixed duration")
    record.add_argument("--duration", type=int, help="Stop automatically after this many seconds")

    process = commands.add_parser("process", help="Transcribe a recording and generate notes")
    process.add_argument("recording", help="Recording filename or path")

    transcribe = commands.add_parser("transcribe", help="Transcribe a recording only")
    transcribe.add_argument("recording", help="Recording filename or path")

    summarize = commands.add_parser("summarize", help="Generate notes from an existing transcript")
    summarize.add_argument("transcript", help="Transcript path")
    summarize.add_argument("--print", dest="print_only", action="store_true",
                           help="Stream the notes to the console instead of saving them")

    commands.add_parser("list", help="List recordings with their processing status")
    commands.add_parser("stats", help="Show storage usage")
    commands.add_parser("cleanup", help="Delete recordings older than the retention window")

    delete = commands.add_parser("delete", help="Delete a recording with its transcript and notes")
    delete.add_argument("recording", help="Recording filename or path")

    commands.add_parser("check", help="Check sox, whisper.cpp and Ollama")

    config_cmd = commands.add_parser("config", help="Read or change settings")
    config_actions = config_cmd.add_subparsers(dest="action", required=True)
    config_get = config_actions.add_parser("get", help="Print a setting")
    config_get.add_argument("key", help="Dot-separated key, e.g. storage.retention_days")
    config_set = config_actions.add_parser("set", help="Change a setting and save it")
    config_set.add_argument("key", help="Dot-separated key, e.g. pipeline.auto_process")
    config_set.add_argument("value", help="New value (parsed as YAML, e.g. 14 or false)")

    return parser


def run_command(app: App, args: argparse.Namespace) -> None:
    if args.command == "record":
        app.record(args.duration)
    elif args.command == "process":
        app.process(args.recording)
    elif args.command == "transcribe":
        app.transcribe(args.recording)
    elif args.command == "summarize":
        app.summarize(args.transcript, args.print_only)
    elif args.command == "list":
        app.list_recordings()
    elif args.command == "stats":
        app.stats()
    elif args.command == "cleanup":
        app.cleanup()
    elif args.command == "delete":
        app.delete(args.recording)
    elif args.command == "check":
        app.check()
    elif args.command == "config":
        if args.action == "get":
            app.config_get(args.key)
        else:
            app.config_set(args.key, args.value)


def main(argv: Optional[list] = None) -> None:
    """Main entry point for Notes4Me."""
    args = build_parser().parse_args(argv)

    try:
        app = App(args.config, args.log_level)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"❌ Configuration error: {e}", style="red")
        sys.exit(1)

    try:
        run_command(app, args)
    except KeyboardInterrupt:
        console.print("\n👋 Goodbye!")
    except Notes4MeError as e:
        console.print(f"❌ {e.summary}", style="red")
        details = str(e).splitlines()[1:]
        if details:
            console.print("\n".join(details), style="dim", markup=False)
        logger.error(f"{e.kind}: {e}")
        sys.exit(1)
    except ValueError as e:
        console.print(f"❌ {e}", style="red")
        logger.error(f"Invalid value: {e}")
        sys.exit(1)
    finally:
        app.shutdown()


if __name__ == "__main__":
    main()
