"""Thread-safe management of mux sources."""

from __future__ import annotations

import threading
from typing import Callable, Dict, Optional

from ffmux.audio.mixer.types import MuxSource, check_volume
from ffmux.errors import SourceNotFoundError


class MuxSourceManager:
    """Insertion-ordered source collection guarded by the engine lock."""

    def __init__(self, lock: Optional[threading.RLock] = None) -> None:
        self._sources: Dict[str, MuxSource] = {}
        self._lock = lock if lock is not None else threading.RLock()

    @property
    def lock(self) -> threading.RLock:
        return self._lock

    def __len__(self) -> int:
        with self._lock:
            return len(self._sources)

    def __contains__(self, source_id: object) -> bool:
        with self._lock:
            return source_id in self._sources

    def snapshot(self) -> list[MuxSource]:
        with self._lock:
            return list(self._sources.values())

    def ids(self) -> list[str]:
        with self._lock:
            return list(self._sources)

    def add(self, source: MuxSource) -> None:
        with self._lock:
            self._sources[source.source_id] = source

    def get(self, source_id: str) -> MuxSource:
        with self._lock:
            source = self._sources.get(source_id)
            if source is None:
                raise SourceNotFoundError(source_id)
            return source

    def pop(self, source_id: str) -> MuxSource:
        with self._lock:
            source = self._sources.pop(source_id, None)
            if source is None:
                raise SourceNotFoundError(source_id)
            return source

    def discard(self, source: MuxSource) -> bool:
        """Remove ``source`` if it is still the registered instance."""

        with self._lock:
            if self._sources.get(source.source_id) is not source:
                return False
            del self._sources[source.source_id]
            return True

    def clear(self) -> list[MuxSource]:
        with self._lock:
            sources = list(self._sources.values())
            self._sources.clear()
            return sources

    def is_empty(self) -> bool:
        with self._lock:
            return not self._sources

    def set_volume(self, source_id: str, volume: float) -> None:
        volume = check_volume(volume)
        with self._lock:
            self.get(source_id).volume = volume

    def set_callback(self, source_id: str, callback: Optional[Callable[[], None]]) -> None:
        with self._lock:
            self.get(source_id).on_finished = callback
