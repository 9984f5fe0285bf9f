"""Default configuration values."""

from __future__ import annotations

from typing import Any, Dict

from ffmux.audio.options import RAW_TRANSCODE_OPTIONS, STD_TRANSCODE_OPTIONS

DEFAULT_CONFIG: Dict[str, Any] = {
    "ffmpeg": {
        "path": "ffmpeg",
    },
    "output": STD_TRANSCODE_OPTIONS.to_mapping(),
    "source": RAW_TRANSCODE_OPTIONS.to_mapping(),
    "mixer": {
        "block_frames": 1,
        # Roughly five seconds of 48 kHz stereo s16le.
        "max_buffered_bytes": 1024 * 1024,
    },
    "diagnostics": {
        "log_level": "WARNING",
        "log_dir": "",
    },
}
