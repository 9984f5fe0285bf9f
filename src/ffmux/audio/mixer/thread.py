"""Mixing thread loop helper.

This module keeps the mixing loop separate from `MuxEngine`, making it easier
to test and reason about. Every collaborator is passed in explicitly.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional

import numpy as np

from ffmux.audio.frame_buffer import BlockingFrameBuffer
from ffmux.audio.mixer.dsp import decode_samples, mix_blocks
from ffmux.audio.mixer.source_manager import MuxSourceManager
from ffmux.audio.mixer.types import MuxSource
from ffmux.errors import StreamClosedError

LOOP_DRAINED = "drained"
LOOP_OUTPUT_FAILED = "output_failed"
LOOP_STOPPED = "stopped"

BACKPRESSURE_POLL_SECONDS = 0.1


def run_mix_loop(
    *,
    sources: MuxSourceManager,
    mixed: BlockingFrameBuffer,
    block_bytes: int,
    dtype: np.dtype,
    stop_event,
    output_error: Callable[[], Optional[Exception]],
    record_error: Callable[[Exception], None],
    release_source: Callable[[MuxSource], None],
    max_buffered_bytes: int = 0,
    logger: Optional[logging.Logger] = None,
) -> str:
    """Mix blocks until no sources remain; return why the loop ended."""

    if logger is None:
        logger = logging.getLogger(__name__)

    while not stop_event.is_set():
        error = output_error()
        if error is not None:
            logger.error("Output encoder failed: %s", error)
            record_error(error)
            return LOOP_OUTPUT_FAILED

        # add_source() checks mixed.closed under this same lock.
        with sources.lock:
            snapshot = sources.snapshot()
            if not snapshot:
                mixed.close()
                return LOOP_DRAINED

        blocks: list[tuple[np.ndarray, float]] = []
        for source in snapshot:
            data = _pull_block(source, sources, block_bytes, record_error, release_source, logger)
            if data:
                blocks.append((decode_samples(data, dtype), source.volume))

        if not blocks:
            continue

        block = mix_blocks(blocks, dtype)
        if not len(block):
            continue
        if max_buffered_bytes > 0:
            while not mixed.wait_below(max_buffered_bytes, timeout=BACKPRESSURE_POLL_SECONDS):
                if mixed.closed or stop_event.is_set():
                    return LOOP_STOPPED
                error = output_error()
                if error is not None:
                    logger.error("Output encoder failed: %s", error)
                    record_error(error)
                    return LOOP_OUTPUT_FAILED
        try:
            mixed.write(block.tobytes())
        except StreamClosedError:
            return LOOP_STOPPED

    return LOOP_STOPPED


def _pull_block(
    source: MuxSource,
    sources: MuxSourceManager,
    block_bytes: int,
    record_error: Callable[[Exception], None],
    release_source: Callable[[MuxSource], None],
    logger: logging.Logger,
) -> bytes:
    session = source.session
    error = session.error
    if error is not None:
        if sources.discard(source):
            logger.warning("Dropping source %s: %s", source.source_id, error)
            record_error(error)
            release_source(source)
        return b""

    try:
        data = session.read(block_bytes)
    except StreamClosedError:
        # Removed by the caller while we were waiting on it.
        return b""

    if data:
        return data if source.source_id in sources else b""

    if not sources.discard(source):
        return b""
    error = session.error
    release_source(source)
    if error is not None:
        logger.warning("Dropping source %s: %s", source.source_id, error)
        record_error(error)
        return b""

    logger.debug("Source %s reached end of stream", source.source_id)
    callback = source.take_callback()
    if callback is not None:
        try:
            callback()
        except Exception:  # pylint: disable=broad-except
            logger.exception("Completion callback of source %s failed", source.source_id)
    return b""
