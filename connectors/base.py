"""Connector contract for the presence bot farm.

This module defines the abstract :class:`Connector` that every transport
implementation inherits from, and the :class:`Session` handle it returns.

A :class:`Session` is a small event emitter.  Implementations call the
protected ``_established`` / ``_terminated`` / ``_error`` helpers; the
helpers enforce the contract that ``established`` and ``terminated`` fire at
most once per session while ``error`` may fire any number of times.
"""

from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Tuple

from core.config import Endpoint, Identity

ESTABLISHED = "established"
TERMINATED = "terminated"
ERROR = "error"

KICKED = "kicked"
DISCONNECTED = "disconnected"

Listener = Callable[..., Any]


class Session(ABC):
    """Handle to one network session for one identity.

    Events:
        established(): The remote side accepted the session.
        terminated(reason, kind): The session ended.  ``reason`` is the raw
            payload (string, mapping or packet-like object); ``kind`` is
            ``"kicked"`` or ``"disconnected"``.
        error(exc): Transport-level error; does not end the session.
    """

    def __init__(self, identity: Identity, endpoint: Endpoint) -> None:
        self.identity = identity
        self.endpoint = endpoint
        self._listeners: Dict[str, List[Tuple[Listener, bool]]] = {}
        self._did_establish = False
        self._did_terminate = False
        self.closed = False

    # -- subscription -----------------------------------------------------

    def on(self, event: str, listener: Listener) -> None:
        self._listeners.setdefault(event, []).append((listener, False))

    def once(self, event: str, listener: Listener) -> None:
        self._listeners.setdefault(event, []).append((listener, True))

    def remove_all_listeners(self) -> None:
        self._listeners.clear()

    def listener_count(self, event: str) -> int:
        return len(self._listeners.get(event, []))

    def emit(self, event: str, *args: Any) -> bool:
        """Invoke listeners for *event*; returns ``True`` if any ran."""
        listeners = self._listeners.get(event)
        if not listeners:
            return False
        self._listeners[event] = [entry for entry in listeners if not entry[1]]
        for listener, _once in listeners:
            listener(*args)
        return True

    # -- helpers for implementations ---------------------------------------

    def _established(self) -> None:
        if self._did_establish or self._did_terminate:
            return
        self._did_establish = True
        self.emit(ESTABLISHED)

    def _terminated(self, reason: Any, kind: str = DISCONNECTED) -> None:
        if self._did_terminate:
            return
        self._did_terminate = True
        self.emit(TERMINATED, reason, kind)

    def _error(self, exc: BaseException) -> None:
        self.emit(ERROR, exc)

    # -- lifecycle ---------------------------------------------------------

    @abstractmethod
    def close(self) -> None:
        """Close the session.  Must be safe to call more than once."""


class Connector(ABC):
    """Factory for :class:`Session` objects.

    ``connect`` must return quickly: the actual network work happens in the
    background and is reported through session events.  Raising from
    ``connect`` signals that the attempt could not even be started.
    """

    name: str = "base"

    @abstractmethod
    def connect(self, identity: Identity, endpoint: Endpoint) -> Session:
        ...
