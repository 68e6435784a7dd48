"""Unit tests for the notes4me command line."""

import pytest
import yaml
from pathlib import Path
from unittest.mock import AsyncMock, patch

from notes4me.main import build_parser, main
from notes4me.models.pipeline import DependencyStatus
from notes4me.services.pipeline import PipelineCoordinator
from notes4me.summarization.ollama import SummarizationJob


@pytest.fixture
def config_file(temp_data_dir):
    path = Path(temp_data_dir) / "notes4me.yaml"
    path.write_text(yaml.safe_dump({
        "storage": {"output_directory": "output", "retention_days": 7},
        "pipeline": {"auto_process": False},
        "logging": {"console_output": False},
    }))
    return path


@pytest.mark.unit
class TestCommandLine:
    """Test cases for argument parsing and simple commands."""

    def test_parser(self):
        args = build_parser().parse_args(["record", "--duration", "30"])
        assert args.command == "record"
        assert args.duration == 30

        args = build_parser().parse_args(["summarize", "t.txt", "--print"])
        assert args.print_only is True

        args = build_parser().parse_args(["config", "set", "storage.retention_days", "14"])
        assert (args.action, args.key, args.value) == ("set", "storage.retention_days", "14")

    def test_command_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])

    def test_list_empty(self, config_file, capsys, restore_logging):
        main(["--config", str(config_file), "list"])
        assert "No recordings found." in capsys.readouterr().out

    def test_stats(self, config_file, capsys, restore_logging, make_file):
        make_file(config_file.parent / "output" / "recordings" / "a_recording.wav", size=2048)

        main(["--config", str(config_file), "stats"])

        out = capsys.readouterr().out
        assert "2 KB" in out
        assert "Recordings" in out

    def test_delete_cascades(self, config_file, capsys, restore_logging, make_file):
        output = config_file.parent / "output"
        make_file(output / "recordings" / "a_recording.wav")
        make_file(output / "processed" / "a_recording_transcript.txt")

        main(["--config", str(config_file), "delete", "a_recording.wav"])

        out = capsys.readouterr().out
        assert "a_recording.wav" in out
        assert "a_recording_transcript.txt" in out
        assert not (output / "recordings" / "a_recording.wav").exists()

    def test_delete_missing_exits_nonzero(self, config_file, restore_logging):
        with pytest.raises(SystemExit) as exc_info:
            main(["--config", str(config_file), "delete", "nothing_recording.wav"])
        assert exc_info.value.code == 1

    def test_config_set_and_get(self, config_file, capsys, restore_logging):
        main(["--config", str(config_file), "config", "set", "storage.retention_days", "14"])
        assert yaml.safe_load(config_file.read_text())["storage"]["retention_days"] == 14

        main(["--config", str(config_file), "config", "get", "storage.retention_days"])
        assert capsys.readouterr().out.strip().endswith("14")

    def test_config_set_invalid_retention(self, config_file, restore_logging):
        with pytest.raises(SystemExit) as exc_info:
            main(["--config", str(config_file), "config", "set", "storage.retention_days", "90"])

        assert exc_info.value.code == 1
        assert yaml.safe_load(config_file.read_text())["storage"]["retention_days"] == 7

    def test_transcribe_missing_file_reports_error(self, config_file, capsys, restore_logging):
        with pytest.raises(SystemExit):
            main(["--config", str(config_file), "transcribe", "/nowhere/x_recording.wav"])

        assert "Audio file not found" in capsys.readouterr().out

    @patch("notes4me.main.list_audio_devices", return_value=["BlackHole 2ch", "MacBook Pro Microphone"])
    def test_check_lists_devices_and_models(self, mock_devices, config_file, capsys, restore_logging):
        status = DependencyStatus(sox=True, whisper=True, ollama=True)
        models = AsyncMock(return_value=[{"name": "llama3.2:latest", "size": 2019393189}])

        with patch.object(PipelineCoordinator, "check_dependencies", return_value=status), \
                patch.object(SummarizationJob, "list_models", models):
            main(["--config", str(config_file), "check"])

        out = capsys.readouterr().out
        assert "BlackHole 2ch, MacBook Pro Microphone" in out
        assert "llama3.2:latest" in out
        mock_devices.assert_called_once()

    @patch("notes4me.main.list_audio_devices")
    def test_check_skips_listing_missing_tools(self, mock_devices, config_file, restore_logging):
        models = AsyncMock(return_value=[])

        with patch.object(PipelineCoordinator, "check_dependencies", return_value=DependencyStatus()), \
                patch.object(SummarizationJob, "list_models", models):
            with pytest.raises(SystemExit) as exc_info:
                main(["--config", str(config_file), "check"])

        assert exc_info.value.code == 1
        mock_devices.assert_not_called()
        models.assert_not_called()
