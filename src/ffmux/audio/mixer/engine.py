"""Mux engine that mixes many transcode sessions into one encoded stream."""

from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

from ffmux.audio.frame_buffer import BlockingFrameBuffer
from ffmux.audio.mixer.dsp import sample_dtype
from ffmux.audio.mixer.source_manager import MuxSourceManager
from ffmux.audio.mixer.thread import LOOP_DRAINED, LOOP_STOPPED, run_mix_loop
from ffmux.audio.mixer.types import (
    FileInput,
    MuxSource,
    SourceInput,
    check_volume,
    new_source_id,
    resolve_source_input,
)
from ffmux.audio.options import TranscodeOptions
from ffmux.audio.transcoding import TranscodeSession
from ffmux.core.config import Settings
from ffmux.core.env import Executable, resolve_ffmpeg_command
from ffmux.errors import StreamClosedError

logger = logging.getLogger(__name__)


class MuxEngine:
    """Mixes a changing set of sources and re-encodes the result.

    Each source is decoded by its own `TranscodeSession` using the source
    profile (raw PCM). A single mixing thread averages one block from every
    source per iteration into a shared buffer, which feeds the output
    session's stdin. `read()` returns the output session's encoded bytes.
    """

    def __init__(
        self,
        options: Optional[TranscodeOptions] = None,
        *,
        source_options: Optional[TranscodeOptions] = None,
        executable: Optional[Executable] = None,
        block_frames: Optional[int] = None,
        max_buffered_bytes: Optional[int] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        if settings is None:
            settings = Settings()
        self._options = options if options is not None else settings.get_output_options()
        self._source_options = source_options if source_options is not None else settings.get_source_options()
        self._options.validate()
        self._source_options.validate()
        self._dtype = sample_dtype(self._source_options.format)
        self._command = resolve_ffmpeg_command(executable, default=settings.get_ffmpeg_path())
        if block_frames is None:
            block_frames = settings.get_block_frames()
        if block_frames < 1:
            raise ValueError("block_frames must be at least 1")
        self._block_bytes = block_frames * self._source_options.frame_bytes
        if max_buffered_bytes is None:
            max_buffered_bytes = settings.get_max_buffered_bytes()
        self._max_buffered_bytes = max(0, int(max_buffered_bytes))

        self._lock = threading.RLock()
        self._sources = MuxSourceManager(self._lock)
        self._mixed = BlockingFrameBuffer(lock=self._lock)
        self._output: TranscodeSession | None = None
        self._thread: threading.Thread | None = None
        self._stop_event = threading.Event()
        self._error: Exception | None = None
        self._started = False
        self._closed = False

    def __enter__(self) -> "MuxEngine":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        self.cleanup()
        return False

    def __len__(self) -> int:
        return len(self._sources)

    # --- sources ---

    def add_source(
        self,
        source,
        volume: float = 1.0,
        on_finished: Optional[Callable[[], None]] = None,
    ) -> str:
        """Start decoding ``source`` (a path or a readable byte stream); return its identifier."""

        source_input = resolve_source_input(source)
        volume = check_volume(volume)
        if self._closed:
            raise StreamClosedError("mux engine has been cleaned up")
        session = self._create_session(source_input)
        session.start()
        mux_source = MuxSource(
            source_id=new_source_id(),
            session=session,
            input=source_input,
            volume=volume,
            on_finished=on_finished,
        )
        with self._lock:
            closed = self._closed or self._mixed.closed
            if not closed:
                self._sources.add(mux_source)
        if closed:
            session.cleanup()
            raise StreamClosedError("mux engine is no longer mixing")
        logger.info("Added source %s (%r)", mux_source.source_id, session)
        return mux_source.source_id

    def remove_source(self, source_id: str) -> None:
        source = self._sources.pop(source_id)
        source.session.cleanup()
        logger.info("Removed source %s", source_id)

    def set_volume(self, source_id: str, volume: float) -> None:
        self._sources.set_volume(source_id, volume)

    def get_volume(self, source_id: str) -> float:
        return self._sources.get(source_id).volume

    def set_callback(self, source_id: str, callback: Optional[Callable[[], None]]) -> None:
        self._sources.set_callback(source_id, callback)

    def source_ids(self) -> list[str]:
        return self._sources.ids()

    def _create_session(self, source_input: SourceInput) -> TranscodeSession:
        if isinstance(source_input, FileInput):
            return TranscodeSession(self._source_options, path=source_input.path, executable=self._command)
        return TranscodeSession(self._source_options, stream=source_input.stream, executable=self._command)

    # --- lifecycle ---

    def start(self) -> None:
        # Held throughout so cleanup() either runs first or sees the output and thread.
        with self._lock:
            if self._started or self._closed:
                return
            self._started = True
            self._output = TranscodeSession(
                self._options,
                stream=self._mixed,
                executable=self._command,
                input_format=self._source_options.raw_input_format(),
            )
            self._output.start()
            self._thread = threading.Thread(target=self._run, name="ffmux-mixer", daemon=True)
            self._thread.start()
        logger.info("Mux engine started with %d source(s)", len(self._sources))

    def cleanup(self) -> None:
        """Stop every session and the mixing thread. Safe to call repeatedly."""

        with self._lock:
            if self._closed:
                return
            self._closed = True
        self._stop_event.set()
        self._mixed.close()
        for source in self._sources.clear():
            source.session.cleanup()
        if self._output is not None:
            self._output.cleanup()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join()
        logger.info("Mux engine cleaned up")

    def _run(self) -> None:
        try:
            reason = run_mix_loop(
                sources=self._sources,
                mixed=self._mixed,
                block_bytes=self._block_bytes,
                dtype=self._dtype,
                stop_event=self._stop_event,
                output_error=self._output_error,
                record_error=self._record_error,
                release_source=self._release_source,
                max_buffered_bytes=self._max_buffered_bytes,
                logger=logger,
            )
        except Exception as exc:  # pylint: disable=broad-except
            logger.exception("Mixing thread failed")
            self._record_error(exc)
            reason = None

        if reason == LOOP_DRAINED:
            # The mixed stream is closed; the output encoder flushes and ends on its own.
            logger.info("All sources finished, mixed stream closed")
        elif reason != LOOP_STOPPED:
            self.cleanup()

    def _output_error(self) -> Optional[Exception]:
        output = self._output
        return output.error if output is not None else None

    def _record_error(self, error: Exception) -> None:
        with self._lock:
            if self._error is None:
                self._error = error

    @staticmethod
    def _release_source(source: MuxSource) -> None:
        source.session.cleanup()

    # --- output ---

    def read(self, size: int = -1) -> bytes:
        output = self._output
        if output is None:
            raise StreamClosedError("mux engine has not been started")
        return output.read(size)

    def readinto(self, buffer) -> int:
        output = self._output
        if output is None:
            raise StreamClosedError("mux engine has not been started")
        return output.readinto(buffer)

    @property
    def error(self) -> Optional[Exception]:
        with self._lock:
            return self._error

    @property
    def running(self) -> bool:
        thread = self._thread
        return thread is not None and thread.is_alive()

    @property
    def started(self) -> bool:
        return self._started

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def output(self) -> Optional[TranscodeSession]:
        return self._output

    @property
    def options(self) -> TranscodeOptions:
        return self._options

    @property
    def source_options(self) -> TranscodeOptions:
        return self._source_options
