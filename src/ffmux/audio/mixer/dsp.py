"""Sample arithmetic for the mux engine."""

from __future__ import annotations

import logging
from typing import Sequence, Tuple

import numpy as np

from ffmux.errors import OptionsError

logger = logging.getLogger(__name__)

_SAMPLE_DTYPES = {
    "s16le": np.dtype("<i2"),
    "s32le": np.dtype("<i4"),
    "f32le": np.dtype("<f4"),
    "f64le": np.dtype("<f8"),
}


def sample_dtype(format_name: str) -> np.dtype:
    try:
        return _SAMPLE_DTYPES[format_name]
    except KeyError:
        raise OptionsError("format", f"cannot mix samples of format {format_name!r}") from None


def decode_samples(data: bytes, dtype: np.dtype) -> np.ndarray:
    usable = len(data) - len(data) % dtype.itemsize
    if usable != len(data):
        logger.debug("Dropping %d trailing bytes of a partial sample", len(data) - usable)
    return np.frombuffer(data[:usable], dtype=dtype)


def mix_blocks(blocks: Sequence[Tuple[np.ndarray, float]], dtype: np.dtype) -> np.ndarray:
    """Average volume-scaled blocks position by position.

    Every position is divided by the number of blocks that reach it, so a
    block that ended early does not pull the tail towards zero. Accumulation
    happens in float64; integer output is truncated toward zero and clipped
    to the sample range.
    """

    blocks = [(samples, volume) for samples, volume in blocks if len(samples)]
    if not blocks:
        return np.zeros(0, dtype=dtype)
    length = max(len(samples) for samples, _ in blocks)
    total = np.zeros(length, dtype=np.float64)
    counts = np.zeros(length, dtype=np.int64)
    for samples, volume in blocks:
        size = len(samples)
        total[:size] += samples.astype(np.float64) * float(volume)
        counts[:size] += 1
    mixed = total / counts
    if np.issubdtype(dtype, np.integer):
        info = np.iinfo(dtype)
        mixed = np.clip(np.trunc(mixed), info.min, info.max)
    return mixed.astype(dtype)
