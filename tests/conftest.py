from __future__ import annotations

import sys
import threading
import time
from pathlib import Path

import numpy as np
import pytest

from ffmux.audio.options import RAW_TRANSCODE_OPTIONS

FAKE_FFMPEG = Path(__file__).with_name("fake_ffmpeg.py")
FRAME_SAMPLES = RAW_TRANSCODE_OPTIONS.pcm_frame_len
FRAME_BYTES = RAW_TRANSCODE_OPTIONS.frame_bytes


@pytest.fixture
def fake_ffmpeg() -> list[str]:
    return [sys.executable, str(FAKE_FFMPEG)]


@pytest.fixture(autouse=True)
def _isolated_environment(monkeypatch, tmp_path):
    monkeypatch.delenv("FFMUX_CONFIG_PATH", raising=False)
    monkeypatch.delenv("FFMUX_CONFIG_DIR", raising=False)
    monkeypatch.delenv("FFMUX_FFMPEG", raising=False)
    monkeypatch.delenv("LOGLEVEL", raising=False)


@pytest.fixture
def pcm_file(tmp_path):
    """Write s16le PCM made of ``frames`` frames of constant ``value``."""

    counter = iter(range(1_000_000))

    def _write(value: int = 0, frames: int = 10, *, name: str | None = None) -> Path:
        path = tmp_path / (name or f"source-{next(counter)}.pcm")
        samples = np.full(frames * FRAME_SAMPLES, value, dtype="<i2")
        path.write_bytes(samples.tobytes())
        return path

    return _write


class EndlessPCM:
    """Readable stream producing a constant sample forever until closed."""

    def __init__(self, value: int = 0) -> None:
        self._chunk = np.full(FRAME_SAMPLES, value, dtype="<i2").tobytes()
        self._closed = threading.Event()

    def read(self, size: int = -1) -> bytes:
        if self._closed.is_set():
            return b""
        time.sleep(0.001)
        return self._chunk

    def close(self) -> None:
        self._closed.set()


@pytest.fixture
def endless_pcm():
    streams: list[EndlessPCM] = []

    def _make(value: int = 0) -> EndlessPCM:
        stream = EndlessPCM(value)
        streams.append(stream)
        return stream

    yield _make
    for stream in streams:
        stream.close()


def wait_for(predicate, timeout: float = 10.0, interval: float = 0.01) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return bool(predicate())


def read_all(reader, timeout: float = 20.0) -> bytes:
    """Read ``reader`` to end of stream in a helper thread, failing on a hang."""

    result: dict[str, object] = {}

    def _target() -> None:
        try:
            result["data"] = reader.read()
        except Exception as exc:  # pragma: no cover - surfaced below
            result["error"] = exc

    thread = threading.Thread(target=_target, daemon=True)
    thread.start()
    thread.join(timeout)
    assert not thread.is_alive(), "read() did not reach end of stream"
    if "error" in result:
        raise result["error"]  # type: ignore[misc]
    return result["data"]  # type: ignore[return-value]


def samples_of(data: bytes) -> np.ndarray:
    return np.frombuffer(data, dtype="<i2")
