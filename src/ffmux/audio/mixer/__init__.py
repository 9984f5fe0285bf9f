"""Mux engine façade.

Public surface:
- `MuxEngine`
- `MuxSource`
- `FileInput` / `StreamInput`
"""

from __future__ import annotations

from ffmux.audio.mixer.engine import MuxEngine
from ffmux.audio.mixer.types import FileInput, MuxSource, StreamInput, resolve_source_input

__all__ = [
    "FileInput",
    "MuxEngine",
    "MuxSource",
    "StreamInput",
    "resolve_source_input",
]
