"""Progress statistics reported by FFmpeg on its diagnostic stream."""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

# size=    256kB time=00:00:01.48 bitrate=1411.2kbits/s speed=2.95x
_PROGRESS_RE = re.compile(
    r"^size=\s*(?P<size>\d+)\s*(?:kB|KiB)\s+"
    r"time=(?P<hours>\d+):(?P<minutes>\d+):(?P<seconds>\d+(?:\.\d+)?)\s+"
    r"bitrate=\s*(?P<bitrate>\d+(?:\.\d+)?)\s*kbits/s\s+"
    r"speed=\s*(?P<speed>\d+(?:\.\d+)?)x"
)


@dataclass(frozen=True)
class TranscodeStats:
    size: int = 0  # kB
    duration: timedelta = timedelta()
    bitrate: float = 0.0  # kbit/s
    speed: float = 0.0


def parse_progress_line(line: str) -> Optional[TranscodeStats]:
    """Return stats for a progress line, or None when the line does not match."""

    match = _PROGRESS_RE.match(line.strip())
    if not match:
        return None
    duration = timedelta(
        hours=int(match["hours"]),
        minutes=int(match["minutes"]),
        seconds=float(match["seconds"]),
    )
    return TranscodeStats(
        size=int(match["size"]),
        duration=duration,
        bitrate=float(match["bitrate"]),
        speed=float(match["speed"]),
    )
