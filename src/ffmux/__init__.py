"""Mix independently encoded audio inputs into one stream through FFmpeg.

Public surface:
- `TranscodeSession` (plus `transcode_file` / `transcode_stream`)
- `TranscodeOptions`, `STD_TRANSCODE_OPTIONS`, `RAW_TRANSCODE_OPTIONS`
- `MuxEngine`
- the exceptions in `ffmux.errors`
- `configure_logging`, an optional logging bootstrap for embedding applications
"""

from __future__ import annotations

from ffmux.audio.options import (
    RAW_TRANSCODE_OPTIONS,
    STD_TRANSCODE_OPTIONS,
    AudioApplication,
    TranscodeOptions,
)
from ffmux.audio.stats import TranscodeStats
from ffmux.audio.transcoding import SessionPhase, TranscodeSession, transcode_file, transcode_stream
from ffmux.audio.mixer import MuxEngine
from ffmux.core.logging_setup import configure_logging
from ffmux.errors import (
    FFmuxError,
    InvalidSourceError,
    OptionsError,
    ProcessError,
    SourceNotFoundError,
    SpawnError,
    StreamClosedError,
)

__all__ = [
    "AudioApplication",
    "FFmuxError",
    "InvalidSourceError",
    "MuxEngine",
    "OptionsError",
    "ProcessError",
    "RAW_TRANSCODE_OPTIONS",
    "STD_TRANSCODE_OPTIONS",
    "SessionPhase",
    "SourceNotFoundError",
    "SpawnError",
    "StreamClosedError",
    "TranscodeOptions",
    "TranscodeSession",
    "TranscodeStats",
    "configure_logging",
    "transcode_file",
    "transcode_stream",
]
