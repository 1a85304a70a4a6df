"""Fixed-size pool of managed connections."""

import logging
from typing import Iterator, List, Optional, Sequence

from core.connection import ConnectionSnapshot, ManagedConnection

logger = logging.getLogger(__name__)


class ConnectionPool:
    """Ordered, immutable collection of :class:`ManagedConnection`.

    The pool never mutates connection internals; it only reads their
    state and forwards ``stop``.
    """

    def __init__(self, connections: Sequence[ManagedConnection]):
        names = [c.name for c in connections]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ValueError(f"Duplicate identity names in pool: {', '.join(duplicates)}")
        self._connections: tuple = tuple(connections)
        self._by_name = {c.name: c for c in self._connections}

    def __iter__(self) -> Iterator[ManagedConnection]:
        return iter(self._connections)

    def __len__(self) -> int:
        return len(self._connections)

    def __getitem__(self, index: int) -> ManagedConnection:
        return self._connections[index]

    def get(self, name: str) -> Optional[ManagedConnection]:
        """Look up a connection by identity name."""
        return self._by_name.get(name)

    def connected_count(self) -> int:
        return sum(1 for c in self._connections if c.is_connected)

    def snapshot(self) -> List[ConnectionSnapshot]:
        return [c.snapshot() for c in self._connections]

    def stop_all(self) -> None:
        """Stop every connection; one failure does not block the rest."""
        for connection in self._connections:
            try:
                connection.stop()
            except Exception as e:
                logger.warning(f"Failed to stop {connection.name}: {e}")
