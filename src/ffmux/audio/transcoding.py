"""FFmpeg-backed transcode sessions.

A session owns exactly one FFmpeg process. Its output is cut into fixed-size
frames that travel through a bounded queue; the queue is the only
backpressure mechanism, so a slow reader ends up stalling FFmpeg through the
pipe buffers instead of losing frames.
"""

from __future__ import annotations

import logging
import os
import queue
import re
import subprocess
import threading
from collections import deque
from datetime import datetime, timedelta
from enum import Enum
from typing import IO, Optional, Union

from ffmux.audio.frame_buffer import FrameBuffer
from ffmux.audio.options import STD_TRANSCODE_OPTIONS, RawInputFormat, TranscodeOptions
from ffmux.audio.stats import TranscodeStats, parse_progress_line
from ffmux.core.env import Executable, resolve_ffmpeg_command
from ffmux.errors import BufferReadError, InvalidSourceError, ProcessError, SpawnError, StreamClosedError

logger = logging.getLogger(__name__)

PUMP_CHUNK_SIZE = 64 * 1024
PUMP_JOIN_TIMEOUT = 1.0
MAX_MESSAGE_LINES = 1000

_EOF = object()
_LINE_END_RE = re.compile(rb"[\r\n]")


class SessionPhase(Enum):
    IDLE = "idle"
    RUNNING = "running"
    DRAINING = "draining"
    STOPPED = "stopped"
    FAILED = "failed"


class TranscodeSession:
    """Runs FFmpeg over a file or a byte stream and exposes its output as frames."""

    def __init__(
        self,
        options: Optional[TranscodeOptions] = None,
        *,
        path: Union[str, "os.PathLike[str]", None] = None,
        stream: Optional[IO[bytes]] = None,
        executable: Optional[Executable] = None,
        input_format: Optional[RawInputFormat] = None,
    ) -> None:
        if options is None:
            options = STD_TRANSCODE_OPTIONS
        options.validate()
        if path is not None and stream is not None:
            raise ValueError("a session reads either a file path or a stream, not both")

        self._options = options
        self._path = os.fspath(path) if path is not None else None
        self._stream = stream
        self._input_format = input_format
        self._command = resolve_ffmpeg_command(executable)

        self._lock = threading.Lock()
        self._read_lock = threading.Lock()
        self._phase = SessionPhase.IDLE
        self._process: subprocess.Popen | None = None
        self._frames: queue.Queue = queue.Queue(maxsize=options.buffered_frames)
        self._eof = False
        self._stats: TranscodeStats | None = None
        self._error: Exception | None = None
        self._messages: deque[str] = deque(maxlen=MAX_MESSAGE_LINES)
        self._unread = FrameBuffer()
        self._frames_read = 0
        self._started_at: datetime | None = None
        self._stop_requested = False
        self._closed = False
        self._frame_thread: threading.Thread | None = None
        self._stderr_thread: threading.Thread | None = None
        self._pump_thread: threading.Thread | None = None

    def __enter__(self) -> "TranscodeSession":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        self.cleanup()
        return False

    # --- lifecycle ---

    def build_command(self) -> list[str]:
        return self._command + self._options.build_args(
            self._path if self._path is not None else "pipe:0",
            input_format=self._input_format,
        )

    def start(self) -> None:
        with self._lock:
            if self._phase is not SessionPhase.IDLE or self._closed:
                return
            command = self.build_command()
            logger.debug("Starting encoder: %s", " ".join(command))
            try:
                process = subprocess.Popen(
                    command,
                    stdin=subprocess.PIPE if self._stream is not None else subprocess.DEVNULL,
                    stdout=subprocess.PIPE,
                    stderr=subprocess.PIPE,
                )
            except (OSError, ValueError) as exc:
                logger.error("Could not start encoder %s: %s", command[0], exc)
                self._error = SpawnError(f"could not start {command[0]}: {exc}")
                self._phase = SessionPhase.FAILED
                self._frames.put(_EOF)
                return
            self._process = process
            self._started_at = datetime.now()
            self._phase = SessionPhase.RUNNING

        self._stderr_thread = threading.Thread(
            target=self._read_stderr, args=(process.stderr,), name=f"ffmux-stderr-{process.pid}", daemon=True
        )
        self._stderr_thread.start()
        if self._stream is not None:
            self._pump_thread = threading.Thread(
                target=self._pump_input, args=(process,), name=f"ffmux-stdin-{process.pid}", daemon=True
            )
            self._pump_thread.start()
        self._frame_thread = threading.Thread(
            target=self._run, args=(process,), name=f"ffmux-frames-{process.pid}", daemon=True
        )
        self._frame_thread.start()

    def stop(self) -> bool:
        """Kill the encoder process. Returns False when nothing was running."""

        with self._lock:
            process = self._process
            if process is None or self._phase not in (SessionPhase.RUNNING, SessionPhase.DRAINING):
                return False
            if process.poll() is not None:
                return False
            self._stop_requested = True
            try:
                process.kill()
            except ProcessLookupError:
                return False
            logger.debug("Sent kill to encoder pid %s", process.pid)
            return True

    def cleanup(self) -> None:
        """Stop the process, drain the frame queue and join every worker thread."""

        with self._lock:
            if self._closed:
                return
            self._closed = True
            if self._phase is SessionPhase.IDLE:
                self._phase = SessionPhase.STOPPED
                self._frames.put(_EOF)
        self.stop()

        self._drain_frames()

        current = threading.current_thread()
        for thread in (self._frame_thread, self._stderr_thread):
            if thread is not None and thread is not current:
                thread.join()
        pump = self._pump_thread
        if pump is not None and pump is not current:
            pump.join(timeout=PUMP_JOIN_TIMEOUT)
            if pump.is_alive():
                logger.warning("Input stream of %r is still blocked in read(); leaving pump thread behind", self)

        process = self._process
        if process is not None:
            for pipe in (process.stdout, process.stderr):
                if pipe is not None:
                    pipe.close()
            process.wait()
        with self._read_lock:
            self._unread.clear()
        logger.debug("Session %r cleaned up", self)

    # --- readers ---

    def read_frame(self) -> bytes:
        """Block for the next frame; ``b""`` means end of stream."""

        if self._eof:
            return b""
        frame = self._frames.get()
        if frame is _EOF:
            self._eof = True
            self._reclose_queue()
            return b""
        return frame

    def read(self, size: int = -1) -> bytes:
        """Read up to ``size`` bytes (all remaining bytes when negative).

        Whole frames are pulled until the request can be served; a short
        read only happens at end of stream.
        """

        if size == 0:
            raise BufferReadError("cannot read into empty buffer")
        with self._read_lock:
            if self._closed:
                raise StreamClosedError("transcode session has been cleaned up")
            while size < 0 or len(self._unread) < size:
                frame = self.read_frame()
                if not frame:
                    break
                self._unread.write(frame)
            available = len(self._unread)
            if available == 0:
                return b""
            return self._unread.read(available if size < 0 else size)

    def readinto(self, buffer) -> int:
        view = memoryview(buffer).cast("B")
        data = self.read(len(view))
        view[: len(data)] = data
        return len(data)

    # --- state accessors ---

    @property
    def options(self) -> TranscodeOptions:
        return self._options

    @property
    def phase(self) -> SessionPhase:
        with self._lock:
            return self._phase

    @property
    def running(self) -> bool:
        return self.phase in (SessionPhase.RUNNING, SessionPhase.DRAINING)

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def error(self) -> Optional[Exception]:
        with self._lock:
            return self._error

    @property
    def stats(self) -> TranscodeStats:
        with self._lock:
            return self._stats or TranscodeStats()

    @property
    def messages(self) -> str:
        with self._lock:
            return "".join(f"{line}\n" for line in self._messages)

    @property
    def frames_read(self) -> int:
        with self._lock:
            return self._frames_read

    @property
    def frame_duration(self) -> timedelta:
        return timedelta(milliseconds=self._options.frame_duration)

    @property
    def started_at(self) -> Optional[datetime]:
        return self._started_at

    @property
    def pid(self) -> Optional[int]:
        return self._process.pid if self._process is not None else None

    def __repr__(self) -> str:
        source = self._path if self._path is not None else "<stream>"
        return f"<TranscodeSession {source} pid={self.pid} phase={self._phase.value}>"

    # --- worker threads ---

    def _run(self, process: subprocess.Popen) -> None:
        try:
            self._read_stdout(process.stdout)
        except Exception as exc:  # pylint: disable=broad-except
            logger.exception("Frame reader of %r failed", self)
            self._record_error(exc)
            self._kill(process)

        with self._lock:
            if self._phase is SessionPhase.RUNNING:
                self._phase = SessionPhase.DRAINING

        if self._stderr_thread is not None:
            self._stderr_thread.join()
        if self._pump_thread is not None:
            self._pump_thread.join(timeout=PUMP_JOIN_TIMEOUT)
        returncode = process.wait()

        with self._lock:
            if returncode != 0 and not self._stop_requested and self._error is None:
                self._error = ProcessError(returncode, "".join(f"{line}\n" for line in self._messages))
                logger.warning("Encoder pid %s exited with status %s", process.pid, returncode)
            failed = self._error is not None

        self._frames.put(_EOF)

        with self._lock:
            self._phase = SessionPhase.FAILED if failed else SessionPhase.STOPPED
        logger.debug("Encoder pid %s finished (status %s, %d frames)", process.pid, returncode, self._frames_read)

    def _read_stdout(self, stdout) -> None:
        frame_bytes = self._options.frame_bytes
        while True:
            try:
                frame = stdout.read(frame_bytes)
            except (OSError, ValueError) as exc:
                logger.debug("Encoder stdout closed: %s", exc)
                return
            if not frame:
                return
            self._frames.put(frame)
            with self._lock:
                self._frames_read += 1

    def _read_stderr(self, stderr) -> None:
        pending = bytearray()
        while True:
            try:
                chunk = stderr.read1(4096)
            except (OSError, ValueError) as exc:
                logger.debug("Encoder stderr closed: %s", exc)
                break
            if not chunk:
                break
            pending += chunk
            start = 0
            for match in _LINE_END_RE.finditer(pending):
                self._handle_stderr_line(bytes(pending[start : match.start()]), match.group())
                start = match.end()
            del pending[:start]
        if pending:
            self._handle_stderr_line(bytes(pending), b"\n")

    def _handle_stderr_line(self, raw: bytes, terminator: bytes) -> None:
        line = raw.decode("utf-8", errors="replace")
        stats = parse_progress_line(line) if line.startswith("size=") else None
        with self._lock:
            if stats is not None:
                self._stats = stats
            elif terminator == b"\n":
                self._messages.append(line)

    def _pump_input(self, process: subprocess.Popen) -> None:
        stream = self._stream
        stdin = process.stdin
        try:
            while True:
                chunk = stream.read(PUMP_CHUNK_SIZE)
                if not chunk:
                    break
                if not isinstance(chunk, (bytes, bytearray, memoryview)):
                    raise InvalidSourceError(f"input stream returned {type(chunk).__name__}, expected bytes")
                stdin.write(chunk)
        except BrokenPipeError:
            logger.debug("Encoder closed its input early")
        except Exception as exc:  # pylint: disable=broad-except
            if not self._stop_requested:
                logger.exception("Feeding encoder input of %r failed", self)
                self._record_error(exc)
                self._kill(process)
        finally:
            try:
                stdin.close()
            except OSError:
                pass

    def _record_error(self, error: Exception) -> None:
        with self._lock:
            if self._error is None:
                self._error = error

    @staticmethod
    def _kill(process: subprocess.Popen) -> None:
        try:
            process.kill()
        except OSError:
            pass

    # --- queue helpers ---

    def _drain_frames(self) -> None:
        if self._eof:
            return
        while self._frames.get() is not _EOF:
            pass
        self._eof = True
        self._reclose_queue()

    def _reclose_queue(self) -> None:
        # Leave the sentinel in place for other blocked readers.
        try:
            self._frames.put_nowait(_EOF)
        except queue.Full:
            pass


def transcode_file(path, options: Optional[TranscodeOptions] = None, **kwargs) -> TranscodeSession:
    session = TranscodeSession(options, path=path, **kwargs)
    session.start()
    return session


def transcode_stream(stream: IO[bytes], options: Optional[TranscodeOptions] = None, **kwargs) -> TranscodeSession:
    session = TranscodeSession(options, stream=stream, **kwargs)
    session.start()
    return session
