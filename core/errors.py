"""Error classification and disconnect-reason handling.

Connectors report trouble in two shapes: exceptions raised on the
transport, and "terminated" payloads whose structure depends on who closed
the session (a plain string, or a packet-like object carrying a nested
``message`` / ``reason``).  This module normalises both.

Classes:
    ErrorKind: Taxonomy used to decide how a failure is handled.
    DisconnectReason: Variant wrapping a raw termination payload.
    ErrorFilter: Configurable set of matcher predicates for benign errors.

Functions:
    extract_reason: Pure payload -> display string conversion.
    is_rotation_reason: Whether a disconnect was initiated by rotation.
    install_exception_handler: Loop-level catch-all for callback errors.
"""

import asyncio
import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Union

logger = logging.getLogger(__name__)

UNKNOWN_REASON = "unknown reason"
ROTATION_REASON = "rotation"


class ErrorKind(Enum):
    """Classification of failures for routing decisions.

    - TRANSIENT_TRANSPORT: Non-fatal transport noise (logged or suppressed,
      never ends the session).
    - SESSION_TERMINATED: Peer kick, disconnect or safety timeout (feeds the
      retry/backoff path).
    - CONNECT_FAILED: The connector could not even start a session
      (treated as an immediate disconnect).
    - UNEXPECTED: Anything else reaching the top level (filtered, logged,
      never crashes the process).
    """
    TRANSIENT_TRANSPORT = "transient_transport"
    SESSION_TERMINATED = "session_terminated"
    CONNECT_FAILED = "connect_failed"
    UNEXPECTED = "unexpected"


@dataclass(frozen=True)
class DisconnectReason:
    """Either a plain message or a structured payload.

    Attributes:
        message: Set when the peer sent a bare string.
        fields: Set when the payload was an object/mapping; may hold
            ``message`` or a nested ``params`` mapping with ``message`` /
            ``reason``.
    """

    message: Optional[str] = None
    fields: Optional[Mapping[str, Any]] = None

    @classmethod
    def from_payload(cls, payload: Any) -> "DisconnectReason":
        if isinstance(payload, DisconnectReason):
            return payload
        if isinstance(payload, str):
            return cls(message=payload)
        if isinstance(payload, BaseException):
            return cls(fields={"message": str(payload)})
        if isinstance(payload, Mapping):
            return cls(fields=payload)
        if payload is None:
            return cls()
        # Packet-like objects: read the attributes we know about
        attrs = {
            key: getattr(payload, key)
            for key in ("message", "params", "reason")
            if getattr(payload, key, None) is not None
        }
        return cls(fields=attrs)

    def display(self) -> str:
        if self.message is not None:
            return self.message
        if not self.fields:
            return UNKNOWN_REASON
        message = self.fields.get("message")
        if message:
            return str(message)
        params = self.fields.get("params")
        if params is not None:
            for key in ("message", "reason"):
                if isinstance(params, Mapping):
                    value = params.get(key)
                else:
                    value = getattr(params, key, None)
                if value:
                    return str(value)
        reason = self.fields.get("reason")
        if isinstance(reason, str) and reason:
            return reason
        return UNKNOWN_REASON


def extract_reason(payload: Any) -> str:
    """Return a human-readable reason for any termination payload."""
    return DisconnectReason.from_payload(payload).display()


def is_rotation_reason(reason: str) -> bool:
    """Rotation-initiated disconnects skip the automatic retry.

    Only the exact rotation marker counts: a peer kick whose text happens
    to mention "rotation" still gets retried.
    """
    return reason == ROTATION_REASON


Matcher = Callable[[ErrorKind, str], bool]


def message_contains(pattern: str, kinds: Optional[Iterable[ErrorKind]] = None) -> Matcher:
    """Build a matcher for a case-insensitive substring of the message.

    Args:
        pattern: Text to look for.
        kinds: Restrict the matcher to these error kinds (all if ``None``).
    """
    needle = pattern.lower()
    allowed = frozenset(kinds) if kinds is not None else None

    def _match(kind: ErrorKind, message: str) -> bool:
        if allowed is not None and kind not in allowed:
            return False
        return needle in message
    slug = re.sub(r"\W+", "_", needle)
    _match.__name__ = f"contains_{slug}"
    return _match


def normalize_error(error: Union[BaseException, str, None]) -> str:
    """Lower-case, whitespace-collapsed message for matching."""
    if error is None:
        return ""
    if isinstance(error, BaseException):
        text = str(error) or type(error).__name__
    else:
        text = str(error)
    return " ".join(text.split()).lower()


class ErrorFilter:
    """Decide whether an error is known-benign noise.

    The filter holds matcher predicates evaluated against a normalised
    ``(kind, message)`` pair.  Suppressed errors are counted so the noise
    level stays visible in status output.
    """

    def __init__(self, matchers: Optional[Iterable[Matcher]] = None) -> None:
        self._matchers: List[Matcher] = list(matchers or [])
        self.suppressed: Dict[str, int] = {}

    @classmethod
    def from_patterns(cls, patterns: Iterable[str]) -> "ErrorFilter":
        return cls(message_contains(p) for p in patterns if p)

    def add(self, matcher: Matcher) -> None:
        self._matchers.append(matcher)

    def is_ignored(self, error: Union[BaseException, str, None], kind: ErrorKind = ErrorKind.UNEXPECTED) -> bool:
        message = normalize_error(error)
        for matcher in self._matchers:
            if matcher(kind, message):
                name = getattr(matcher, "__name__", "matcher")
                self.suppressed[name] = self.suppressed.get(name, 0) + 1
                return True
        return False


def install_exception_handler(loop: asyncio.AbstractEventLoop, error_filter: ErrorFilter) -> None:
    """Route unhandled callback/task errors through *error_filter*.

    Benign errors are dropped silently; everything else is logged.  The
    process keeps running in both cases.
    """

    def _handler(_loop: asyncio.AbstractEventLoop, context: Dict[str, Any]) -> None:
        exc = context.get("exception")
        if exc is not None and error_filter.is_ignored(exc, ErrorKind.UNEXPECTED):
            return
        if exc is None and error_filter.is_ignored(context.get("message"), ErrorKind.UNEXPECTED):
            return
        logger.warning(
            "⚠️ Unhandled error: %s",
            exc if exc is not None else context.get("message", "unknown"),
            exc_info=exc if isinstance(exc, BaseException) else None,
        )

    loop.set_exception_handler(_handler)
