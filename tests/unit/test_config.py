"""Unit tests for Notes4MeConfig."""

import pytest
import yaml
from pathlib import Path

from notes4me.config import Notes4MeConfig, find_config_file, load_config


@pytest.mark.unit
class TestNotes4MeConfig:
    """Test cases for the YAML settings store."""

    def test_defaults_without_file(self):
        config = Notes4MeConfig()

        assert config.get('storage.retention_days') == 7
        assert config.get('pipeline.auto_process') is True
        assert config.get('ollama.base_url') == "http://localhost:11434"
        assert config.get_retention_policy().days == 7
        assert config.get_output_directory().name == "MeetingRecordings"

    def test_missing_file_raises(self, temp_data_dir):
        with pytest.raises(FileNotFoundError):
            Notes4MeConfig(str(Path(temp_data_dir) / "nope.yaml"))

    def test_load_merges_defaults_and_resolves_relative_paths(self, temp_data_dir):
        config_path = Path(temp_data_dir) / "notes4me.yaml"
        config_path.write_text(yaml.safe_dump({
            "storage": {"output_directory": "meetings", "retention_days": 14},
            "ollama": {"model": "mistral"},
        }))

        config = Notes4MeConfig(str(config_path))

        assert config.get('storage.retention_days') == 14
        assert config.get('ollama.model') == "mistral"
        assert config.get('ollama.base_url') == "http://localhost:11434"
        assert config.get_output_directory() == (Path(temp_data_dir) / "meetings").absolute()
        assert config.get_log_file_path() == config.get_output_directory() / "logs" / "notes4me.log"

    @pytest.mark.parametrize("days", [0, 31, "seven"])
    def test_invalid_retention_in_file(self, temp_data_dir, days):
        config_path = Path(temp_data_dir) / "notes4me.yaml"
        config_path.write_text(yaml.safe_dump({"storage": {"retention_days": days}}))

        with pytest.raises(ValueError):
            Notes4MeConfig(str(config_path))

    def test_invalid_yaml(self, temp_data_dir):
        config_path = Path(temp_data_dir) / "notes4me.yaml"
        config_path.write_text("storage: [unclosed")

        with pytest.raises(ValueError):
            Notes4MeConfig(str(config_path))

    def test_get_missing_key_returns_default(self):
        config = Notes4MeConfig()
        assert config.get('nope.nothing', 'fallback') == 'fallback'
        assert config.get('storage.retention_days.deeper') is None

    def test_set_creates_nested_keys(self):
        config = Notes4MeConfig()
        config.set('custom.section.value', 3)
        assert config.get('custom.section.value') == 3

    def test_set_validates_retention(self):
        config = Notes4MeConfig()
        with pytest.raises(ValueError):
            config.set('storage.retention_days', 45)
        assert config.get('storage.retention_days') == 7

    def test_save_round_trip(self, temp_data_dir):
        config = Notes4MeConfig()
        config.set('storage.retention_days', 21)

        target = Path(temp_data_dir) / "nested" / "notes4me.yaml"
        assert config.save(str(target)) == target

        reloaded = Notes4MeConfig(str(target))
        assert reloaded.get('storage.retention_days') == 21
        assert config.config_file == target

    def test_save_without_path_raises(self):
        with pytest.raises(ValueError):
            Notes4MeConfig().save()

    def test_find_config_file_walks_up(self, temp_data_dir):
        root = Path(temp_data_dir)
        (root / "notes4me.yaml").write_text("{}")
        nested = root / "a" / "b"
        nested.mkdir(parents=True)

        assert find_config_file(str(nested)) == root / "notes4me.yaml"

    def test_load_config_explicit_path(self, temp_data_dir):
        config_path = Path(temp_data_dir) / "custom.yaml"
        config_path.write_text(yaml.safe_dump({"pipeline": {"auto_process": False}}))

        assert load_config(str(config_path)).get_auto_process() is False
