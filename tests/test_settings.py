from __future__ import annotations

import logging
from pathlib import Path

import pytest
import yaml

import ffmux
from ffmux import MuxEngine
from ffmux.audio.options import RAW_TRANSCODE_OPTIONS, STD_TRANSCODE_OPTIONS, AudioApplication
from ffmux.core.config import DEFAULT_CONFIG, Settings, merge_config
from ffmux.core.env import resolve_config_path, resolve_ffmpeg_command
from ffmux.core.logging_setup import configure_logging, resolve_log_level
from ffmux.errors import OptionsError


def test_defaults_without_config_file():
    settings = Settings()
    assert settings.config_path is None
    assert settings.get_ffmpeg_path() == "ffmpeg"
    assert settings.get_output_options() == STD_TRANSCODE_OPTIONS
    assert settings.get_source_options() == RAW_TRANSCODE_OPTIONS
    assert settings.get_block_frames() == 1
    assert settings.get_max_buffered_bytes() == 1024 * 1024
    assert settings.get_log_level() == "WARNING"
    assert settings.get_log_dir() is None


def test_yaml_file_overrides_single_keys(tmp_path):
    path = tmp_path / "settings.yaml"
    path.write_text(
        yaml.safe_dump(
            {
                "ffmpeg": {"path": "/opt/ffmpeg/bin/ffmpeg"},
                "output": {"codec": "libopus", "format": "ogg", "bitrate": 64, "application": "voip"},
                "mixer": {"block_frames": 3},
                "diagnostics": {"log_level": "debug"},
            }
        ),
        encoding="utf-8",
    )

    settings = Settings(path)
    output = settings.get_output_options()
    assert settings.get_ffmpeg_path() == "/opt/ffmpeg/bin/ffmpeg"
    assert output.codec == "libopus"
    assert output.bitrate == 64
    assert output.application is AudioApplication.VOIP
    assert output.compression_level == STD_TRANSCODE_OPTIONS.compression_level
    assert settings.get_block_frames() == 3
    assert settings.get_log_level() == "DEBUG"


def test_environment_selects_config_file(tmp_path, monkeypatch):
    config_dir = tmp_path / "conf"
    config_dir.mkdir()
    (config_dir / "settings.yaml").write_text("mixer:\n  max_buffered_bytes: 4096\n", encoding="utf-8")
    monkeypatch.setenv("FFMUX_CONFIG_DIR", str(config_dir))

    assert resolve_config_path() == config_dir / "settings.yaml"
    assert Settings().get_max_buffered_bytes() == 4096

    explicit = tmp_path / "explicit.yaml"
    monkeypatch.setenv("FFMUX_CONFIG_PATH", str(explicit))
    assert resolve_config_path(Path("ignored.yaml")) == explicit


def test_invalid_profile_names_its_section(tmp_path):
    path = tmp_path / "settings.yaml"
    path.write_text("source:\n  volume: 9000\n", encoding="utf-8")

    with pytest.raises(OptionsError) as excinfo:
        Settings(path).get_source_options()
    assert excinfo.value.field == "source"


def test_non_mapping_file_falls_back_to_defaults(tmp_path):
    path = tmp_path / "settings.yaml"
    path.write_text("- just\n- a list\n", encoding="utf-8")
    assert Settings(path).get_raw() == DEFAULT_CONFIG


def test_bad_mixer_values_fall_back(tmp_path):
    path = tmp_path / "settings.yaml"
    path.write_text("mixer:\n  block_frames: lots\n  max_buffered_bytes: -5\n", encoding="utf-8")
    settings = Settings(path)
    assert settings.get_block_frames() == 1
    assert settings.get_max_buffered_bytes() == 0


def test_save_round_trip(tmp_path):
    path = tmp_path / "nested" / "settings.yaml"
    settings = Settings(path)
    settings.set_value("output", "bitrate", 96)
    assert settings.save() == path

    reloaded = Settings(path)
    assert reloaded.get_output_options().bitrate == 96
    assert reloaded.get_raw()["source"] == DEFAULT_CONFIG["source"]


def test_save_without_path_fails():
    with pytest.raises(ValueError):
        Settings().save()


def test_merge_config_is_recursive_and_copies():
    base = {"a": {"x": 1, "y": 2}, "b": 3}
    merged = merge_config(base, {"a": {"y": 5}, "c": 4})
    assert merged == {"a": {"x": 1, "y": 5}, "b": 3, "c": 4}
    merged["a"]["x"] = 99
    assert base["a"]["x"] == 1


def test_engine_reads_profiles_from_settings(tmp_path, fake_ffmpeg):
    path = tmp_path / "settings.yaml"
    path.write_text("output:\n  bitrate: 48\nmixer:\n  block_frames: 2\n", encoding="utf-8")

    engine = MuxEngine(settings=Settings(path), executable=fake_ffmpeg)
    try:
        assert engine.options.bitrate == 48
        assert engine.source_options == RAW_TRANSCODE_OPTIONS
    finally:
        engine.cleanup()


def test_ffmpeg_command_resolution(monkeypatch):
    assert resolve_ffmpeg_command(["python3", "fake.py"]) == ["python3", "fake.py"]
    monkeypatch.setenv("FFMUX_FFMPEG", "ffmpeg-that-does-not-exist")
    assert resolve_ffmpeg_command() == ["ffmpeg-that-does-not-exist"]
    assert resolve_ffmpeg_command("other-missing-ffmpeg") == ["other-missing-ffmpeg"]


def test_log_level_resolution(monkeypatch):
    assert resolve_log_level(None, "INFO") == logging.INFO
    assert resolve_log_level("error") == logging.ERROR
    assert resolve_log_level("nonsense") == logging.WARNING
    monkeypatch.setenv("LOGLEVEL", "debug")
    assert resolve_log_level("error") == logging.DEBUG


def test_configure_logging_writes_file(tmp_path):
    root = logging.getLogger()
    previous = list(root.handlers), root.level
    try:
        log_path = configure_logging("INFO", tmp_path / "logs")
        assert log_path is not None
        assert log_path.parent == tmp_path / "logs"
        assert log_path.name.startswith("ffmux-")
        assert root.level == logging.INFO

        logging.getLogger("ffmux.test").info("hello from the mixer")
        for handler in root.handlers:
            handler.flush()
        assert "hello from the mixer" in log_path.read_text(encoding="utf-8")
    finally:
        for handler in root.handlers:
            handler.close()
        root.handlers[:] = previous[0]
        root.setLevel(previous[1])


def test_configure_logging_uses_settings(tmp_path):
    path = tmp_path / "settings.yaml"
    path.write_text("diagnostics:\n  log_level: ERROR\n", encoding="utf-8")
    root = logging.getLogger()
    previous = list(root.handlers), root.level
    try:
        assert configure_logging(settings=Settings(path)) is None
        assert root.level == logging.ERROR
    finally:
        root.handlers[:] = previous[0]
        root.setLevel(previous[1])


def test_logging_bootstrap_is_exported():
    assert ffmux.configure_logging is configure_logging
    assert "configure_logging" in ffmux.__all__
