"""Helpers for environment overrides shared across the package."""

from __future__ import annotations

import os
import shutil
from pathlib import Path
from typing import Optional, Sequence, Union

Executable = Union[str, "os.PathLike[str]", Sequence[str]]


def resolve_config_path(default_path: Optional[Path] = None) -> Optional[Path]:
    """Pick config path based on environment overrides.

    ``None`` means no file is read and only built-in defaults apply.
    """

    env_path = os.environ.get("FFMUX_CONFIG_PATH")
    if env_path:
        return Path(env_path)
    env_dir = os.environ.get("FFMUX_CONFIG_DIR")
    if env_dir:
        return Path(env_dir) / "settings.yaml"
    return default_path


def resolve_ffmpeg_command(executable: Optional[Executable] = None, *, default: str = "ffmpeg") -> list[str]:
    """Return the command prefix used to launch the encoder.

    An explicit ``executable`` wins, then ``FFMUX_FFMPEG``, then ``default``.
    A sequence is taken verbatim (e.g. an interpreter plus a script); a single
    name is looked up on PATH and left as-is when it cannot be found, so the
    spawn itself reports the failure.
    """

    if executable is None:
        executable = os.environ.get("FFMUX_FFMPEG") or default
    if isinstance(executable, (str, os.PathLike)):
        name = os.fspath(executable)
        return [shutil.which(name) or name]
    return [os.fspath(part) for part in executable]
