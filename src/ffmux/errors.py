"""Exception hierarchy shared by transcode sessions and the mux engine."""

from __future__ import annotations


class FFmuxError(Exception):
    """Base class for every error raised by ffmux."""


class OptionsError(FFmuxError, ValueError):
    """Raised when a transcode option is outside its documented range."""

    def __init__(self, field: str, message: str) -> None:
        super().__init__(f"{field}: {message}")
        self.field = field


class SpawnError(FFmuxError):
    """The encoder process (or one of its pipes) could not be started."""


class ProcessError(FFmuxError):
    """The encoder process exited with a failure status."""

    def __init__(self, returncode: int, messages: str = "") -> None:
        tail = messages.strip().splitlines()[-1] if messages.strip() else ""
        text = f"ffmpeg exited with status {returncode}"
        if tail:
            text = f"{text}: {tail}"
        super().__init__(text)
        self.returncode = returncode
        self.messages = messages


class SourceNotFoundError(FFmuxError, KeyError):
    """No mux source is registered under the given identifier."""

    def __str__(self) -> str:
        return f"unknown source identifier: {self.args[0]!r}" if self.args else "unknown source identifier"


class InvalidSourceError(FFmuxError, TypeError):
    """A source is neither a file path nor a readable byte stream."""


class StreamClosedError(FFmuxError):
    """The stream was used after cleanup (or before it was started)."""


class BufferReadError(FFmuxError, ValueError):
    """Read requested into a zero-capacity buffer."""


class BufferWriteError(FFmuxError, ValueError):
    """Write requested from an empty payload."""


__all__ = [
    "BufferReadError",
    "BufferWriteError",
    "FFmuxError",
    "InvalidSourceError",
    "OptionsError",
    "ProcessError",
    "SourceNotFoundError",
    "SpawnError",
    "StreamClosedError",
]
