"""YAML-backed settings with built-in defaults."""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from ffmux.audio.options import TranscodeOptions
from ffmux.core.config.defaults import DEFAULT_CONFIG
from ffmux.core.env import resolve_config_path
from ffmux.errors import OptionsError

logger = logging.getLogger(__name__)

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def merge_config(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Return ``base`` with ``override`` layered on top, section by section."""

    merged = copy.deepcopy(base)
    for key, value in override.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = merge_config(current, value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


@dataclass
class Settings:
    """Settings loaded from an optional YAML file over DEFAULT_CONFIG."""

    config_path: Optional[Path] = None

    def __post_init__(self) -> None:
        self.config_path = resolve_config_path(self.config_path)
        self._data: Dict[str, Any] = {}
        self.load()

    def load(self) -> None:
        user_config: Any = {}
        if self.config_path is not None and self.config_path.exists():
            with self.config_path.open("r", encoding="utf-8") as file:
                user_config = yaml.safe_load(file) or {}
            if not isinstance(user_config, dict):
                logger.warning("Ignoring %s: top level is not a mapping", self.config_path)
                user_config = {}
        self._data = merge_config(DEFAULT_CONFIG, user_config)

    def save(self, path: Optional[Path] = None) -> Path:
        target = Path(path) if path is not None else self.config_path
        if target is None:
            raise ValueError("no configuration path to save to")
        target.parent.mkdir(parents=True, exist_ok=True)
        with target.open("w", encoding="utf-8") as file:
            yaml.safe_dump(self._data, file, allow_unicode=False, sort_keys=True)
        return target

    def get_raw(self) -> Dict[str, Any]:
        return copy.deepcopy(self._data)

    def set_value(self, section: str, key: str, value: Any) -> None:
        self._data.setdefault(section, {})[key] = value

    # --- ffmpeg ---
    def get_ffmpeg_path(self) -> str:
        value = self._data.get("ffmpeg", {}).get("path")
        return str(value) if value else DEFAULT_CONFIG["ffmpeg"]["path"]

    # --- transcode profiles ---
    def get_output_options(self) -> TranscodeOptions:
        return self._options_section("output")

    def get_source_options(self) -> TranscodeOptions:
        return self._options_section("source")

    def _options_section(self, section: str) -> TranscodeOptions:
        values = self._data.get(section)
        if not isinstance(values, dict):
            values = DEFAULT_CONFIG[section]
        try:
            options = TranscodeOptions.from_mapping(values)
            options.validate()
        except (OptionsError, TypeError) as exc:
            raise OptionsError(section, f"invalid {section} options in configuration: {exc}") from exc
        return options

    # --- mixer ---
    def get_block_frames(self) -> int:
        value = self._data.get("mixer", {}).get("block_frames", DEFAULT_CONFIG["mixer"]["block_frames"])
        try:
            return max(1, int(value))
        except (TypeError, ValueError):
            return DEFAULT_CONFIG["mixer"]["block_frames"]

    def get_max_buffered_bytes(self) -> int:
        value = self._data.get("mixer", {}).get("max_buffered_bytes", DEFAULT_CONFIG["mixer"]["max_buffered_bytes"])
        try:
            return max(0, int(value))
        except (TypeError, ValueError):
            return DEFAULT_CONFIG["mixer"]["max_buffered_bytes"]

    # --- diagnostics ---
    def get_log_level(self) -> str:
        diagnostics = self._data.get("diagnostics", {})
        level = str(diagnostics.get("log_level", DEFAULT_CONFIG["diagnostics"]["log_level"])).upper()
        return level if level in _LOG_LEVELS else DEFAULT_CONFIG["diagnostics"]["log_level"]

    def get_log_dir(self) -> Optional[Path]:
        value = self._data.get("diagnostics", {}).get("log_dir")
        return Path(value) if value else None
