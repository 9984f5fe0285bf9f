"""Shared types for the mux engine."""

from __future__ import annotations

import io
import math
import os
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import IO, Callable, Optional, Union

from ffmux.audio.transcoding import TranscodeSession
from ffmux.errors import InvalidSourceError


@dataclass(frozen=True)
class FileInput:
    path: Path


@dataclass(frozen=True)
class StreamInput:
    stream: IO[bytes]


SourceInput = Union[FileInput, StreamInput]


def resolve_source_input(source: object) -> SourceInput:
    """Classify a caller-supplied source once, before any session exists."""

    if isinstance(source, (FileInput, StreamInput)):
        return source
    if isinstance(source, (str, os.PathLike)):
        return FileInput(Path(source))
    if isinstance(source, io.TextIOBase):
        raise InvalidSourceError(f"source stream must yield bytes, got text stream {type(source).__name__}")
    if callable(getattr(source, "read", None)):
        return StreamInput(source)  # type: ignore[arg-type]
    raise InvalidSourceError(f"invalid source type: {type(source).__name__}")


def new_source_id() -> str:
    return uuid.uuid4().hex


def check_volume(volume: float) -> float:
    volume = float(volume)
    if not math.isfinite(volume):
        raise ValueError(f"volume must be a finite number, got {volume!r}")
    return volume


@dataclass
class MuxSource:
    source_id: str
    session: TranscodeSession
    input: SourceInput
    volume: float = 1.0
    on_finished: Optional[Callable[[], None]] = None
    finished: bool = field(default=False)

    def take_callback(self) -> Optional[Callable[[], None]]:
        """Hand out the completion callback at most once."""

        if self.finished:
            return None
        self.finished = True
        return self.on_finished
