"""Per-identity connection lifecycle.

:class:`ManagedConnection` owns exactly one identity's session and drives
it through connect, disconnect detection, backoff retry and externally
triggered rotation.  All work happens in timer and connector callbacks on
one event loop; single-flight is kept by cancelling every pending timer
before a new connect and by ignoring events from superseded sessions.

State machine::

    IDLE --start/connect--> CONNECTING --established--> CONNECTED
    CONNECTED --terminated/timeout/rotation--> IDLE --retry/rotation timer--> CONNECTING
    any --stop--> IDLE (terminal)
"""

import logging
import random
from dataclasses import asdict, dataclass
from enum import Enum
from functools import partial
from typing import Any, Callable, Dict, Optional

from connectors.base import DISCONNECTED, ERROR, ESTABLISHED, TERMINATED, Connector, Session
from core.clock import Clock, TimerHandle
from core.config import Endpoint, Identity, RetryPolicy
from core.errors import ROTATION_REASON, ErrorFilter, ErrorKind, extract_reason, is_rotation_reason

logger = logging.getLogger(__name__)

DEFAULT_SAFETY_TIMEOUT = 60.0
DEFAULT_ROTATION_RECONNECT_DELAY = 5.0


class ConnectionState(Enum):
    """Lifecycle states of a :class:`ManagedConnection`."""
    IDLE = "idle"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTING = "disconnecting"


def calculate_retry_delay(attempt_count: int, policy: RetryPolicy, rng: Optional[random.Random] = None) -> float:
    """Calculate reconnect delay with exponential backoff + jitter.

    Formula: min(base * factor ** attempts, max_delay) + uniform(0, jitter)

    The exponential part is non-decreasing in *attempt_count* and
    saturates at ``max_delay``; jitter is added on top so the result lies
    in ``[exponential, exponential + jitter)``.
    """
    exponential = min(
        policy.base_delay * (policy.growth_factor ** max(0, attempt_count)),
        policy.max_delay,
    )
    jitter = (rng or random).random() * policy.jitter
    return exponential + jitter


@dataclass
class ConnectionSnapshot:
    """Read-only view of a connection for status output."""

    name: str
    state: str
    attempt_count: int
    total_connects: int
    last_attempt_time: Optional[float]
    connected_since: Optional[float]
    last_disconnect_reason: Optional[str]
    retry_pending: bool
    stopped: bool

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


StateListener = Callable[["ManagedConnection", ConnectionState, ConnectionState], None]


class ManagedConnection:
    """Keeps one identity connected.

    Attributes:
        identity: The :class:`Identity` this connection represents.
        session: The live connector session, if any (at most one).
        state: Current :class:`ConnectionState`.
        attempt_count: Connect attempts since the last success.
        last_attempt_time: Clock time of the most recent attempt.
        pending_retry: Handle of the outstanding retry timer, if any.
    """

    def __init__(
        self,
        identity: Identity,
        connector: Connector,
        endpoint: Endpoint,
        clock: Clock,
        retry_policy: Optional[RetryPolicy] = None,
        safety_timeout: float = DEFAULT_SAFETY_TIMEOUT,
        rotation_reconnect_delay: float = DEFAULT_ROTATION_RECONNECT_DELAY,
        error_filter: Optional[ErrorFilter] = None,
        rng: Optional[random.Random] = None,
        on_state_change: Optional[StateListener] = None,
    ):
        self.identity = identity
        self.connector = connector
        self.endpoint = endpoint
        self.clock = clock
        self.retry_policy = retry_policy or RetryPolicy()
        self.safety_timeout = safety_timeout
        self.rotation_reconnect_delay = rotation_reconnect_delay
        self.error_filter = error_filter or ErrorFilter()
        self.rng = rng
        self.on_state_change = on_state_change

        self.session: Optional[Session] = None
        self.state = ConnectionState.IDLE
        self.attempt_count = 0
        self.last_attempt_time: Optional[float] = None
        self.pending_retry: Optional[TimerHandle] = None
        self.connected_since: Optional[float] = None
        self.last_disconnect_reason: Optional[str] = None
        self.total_connects = 0

        self._safety_timer: Optional[TimerHandle] = None
        self._rotation_timer: Optional[TimerHandle] = None
        self._started = False
        self._stopped = False

    @property
    def name(self) -> str:
        return self.identity.name

    @property
    def is_connected(self) -> bool:
        return self.state == ConnectionState.CONNECTED

    @property
    def stopped(self) -> bool:
        return self._stopped

    def __repr__(self) -> str:
        return f"<ManagedConnection {self.name} {self.state.value} attempts={self.attempt_count}>"

    # ------------------------------------------------------------------
    # Public lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Begin connecting.  May only be called once."""
        if self._started or self._stopped:
            raise RuntimeError(f"{self.name} has already been started")
        self._started = True
        logger.info(f"🔌 Starting {self.name}...")
        self.connect()

    def connect(self) -> None:
        """Start a fresh connect attempt, replacing any previous session."""
        if self._stopped:
            return

        self._cancel_retry()
        self._cancel_safety_timer()
        self._cancel_rotation_timer()
        self._teardown_session()

        self.attempt_count += 1
        self.last_attempt_time = self.clock.time()
        self._set_state(ConnectionState.CONNECTING)
        logger.info(f"🔗 {self.name} connecting... (attempt {self.attempt_count})")

        try:
            session = self.connector.connect(self.identity, self.endpoint)
        except Exception as e:
            logger.warning(f"❌ {self.name} connection failed: {e}")
            self.last_disconnect_reason = f"connect failed: {e}"
            self._set_state(ConnectionState.IDLE)
            self.schedule_retry()
            return

        self.session = session
        session.once(ESTABLISHED, partial(self._on_established, session))
        session.once(TERMINATED, partial(self._on_terminated, session))
        session.on(ERROR, partial(self._on_error, session))
        self._safety_timer = self.clock.call_later(
            self.safety_timeout, self._on_safety_timeout, session
        )

    def handle_disconnect(self, reason: str) -> None:
        """Tear down the current session and, unless rotating, retry.

        Args:
            reason: Display reason.  The exact rotation marker suppresses
                the automatic retry because the rotation owns the
                reconnect.
        """
        if self.state == ConnectionState.CONNECTED:
            self._set_state(ConnectionState.DISCONNECTING)
            logger.info(f"🔌 {self.name} {reason}")

        self.last_disconnect_reason = reason
        self.connected_since = None
        self._cancel_safety_timer()
        self._teardown_session()
        self._set_state(ConnectionState.IDLE)

        if not is_rotation_reason(reason):
            self.schedule_retry()

    def schedule_retry(self) -> None:
        """Arm the single backoff timer that calls :meth:`connect`."""
        if self._stopped:
            return
        self._cancel_retry()

        delay = calculate_retry_delay(self.attempt_count, self.retry_policy, self.rng)
        logger.info(f"⏳ {self.name} reconnecting in {round(delay)}s...")
        self.pending_retry = self.clock.call_later(delay, self._fire_retry)

    def rotate(self) -> None:
        """Force a disconnect + delayed reconnect, or (re)start if down."""
        if self._stopped:
            return

        if self.state == ConnectionState.CONNECTED and self.session is not None:
            logger.info(f"🔄 ROTATION: {self.name} cycling connection...")
            self.handle_disconnect(ROTATION_REASON)
            self._cancel_rotation_timer()
            self._rotation_timer = self.clock.call_later(
                self.rotation_reconnect_delay, self._fire_rotation_reconnect
            )
        else:
            logger.info(f"🔄 ROTATION: {self.name} not connected, starting...")
            self.connect()

    def stop(self) -> None:
        """Cancel all timers and close the session.  Terminal."""
        logger.info(f"🛑 Stopping {self.name}")
        self._stopped = True
        self._cancel_retry()
        self._cancel_safety_timer()
        self._cancel_rotation_timer()
        self._teardown_session()
        self.connected_since = None
        self._set_state(ConnectionState.IDLE)

    def snapshot(self) -> ConnectionSnapshot:
        return ConnectionSnapshot(
            name=self.name,
            state=self.state.value,
            attempt_count=self.attempt_count,
            total_connects=self.total_connects,
            last_attempt_time=self.last_attempt_time,
            connected_since=self.connected_since,
            last_disconnect_reason=self.last_disconnect_reason,
            retry_pending=self.pending_retry is not None,
            stopped=self._stopped,
        )

    # ------------------------------------------------------------------
    # Session callbacks (ignored once the session has been replaced)
    # ------------------------------------------------------------------

    def _is_current(self, session: Session) -> bool:
        return not self._stopped and session is self.session

    def _on_established(self, session: Session) -> None:
        if not self._is_current(session):
            return
        self._cancel_safety_timer()
        self.attempt_count = 0
        self.total_connects += 1
        self.connected_since = self.clock.time()
        self._set_state(ConnectionState.CONNECTED)
        logger.info(f"✅ {self.name} - AFK ACTIVE")

    def _on_terminated(self, session: Session, payload: Any = None, kind: str = DISCONNECTED) -> None:
        if not self._is_current(session):
            return
        self.handle_disconnect(f"{kind}: {extract_reason(payload)}")

    def _on_error(self, session: Session, exc: BaseException) -> None:
        if not self._is_current(session):
            return
        if self.error_filter.is_ignored(exc, ErrorKind.TRANSIENT_TRANSPORT):
            logger.debug("%s suppressed transport error: %s", self.name, exc)
            return
        logger.warning(f"⚠️ {self.name} error: {exc}")

    def _on_safety_timeout(self, session: Session) -> None:
        self._safety_timer = None
        if not self._is_current(session):
            return
        if self.state != ConnectionState.CONNECTED:
            logger.warning(f"⏰ {self.name} connection timeout")
            self.handle_disconnect("timeout")

    # ------------------------------------------------------------------
    # Timers
    # ------------------------------------------------------------------

    def _fire_retry(self) -> None:
        self.pending_retry = None
        if self._stopped:
            return
        self.connect()

    def _fire_rotation_reconnect(self) -> None:
        self._rotation_timer = None
        if self._stopped:
            return
        logger.info(f"🔄 ROTATION: {self.name} reconnecting after rotation...")
        self.connect()

    def _cancel_retry(self) -> None:
        if self.pending_retry is not None:
            self.pending_retry.cancel()
            self.pending_retry = None

    def _cancel_safety_timer(self) -> None:
        if self._safety_timer is not None:
            self._safety_timer.cancel()
            self._safety_timer = None

    def _cancel_rotation_timer(self) -> None:
        if self._rotation_timer is not None:
            self._rotation_timer.cancel()
            self._rotation_timer = None

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _teardown_session(self) -> None:
        session, self.session = self.session, None
        if session is None:
            return
        try:
            session.remove_all_listeners()
            session.close()
        except Exception as e:
            logger.debug("%s ignored error while closing session: %s", self.name, e)

    def _set_state(self, new_state: ConnectionState) -> None:
        old_state = self.state
        if old_state == new_state:
            return
        self.state = new_state
        logger.debug("%s state %s -> %s", self.name, old_state.value, new_state.value)
        if self.on_state_change is not None:
            try:
                self.on_state_change(self, old_state, new_state)
            except Exception as e:
                logger.warning(f"State listener failed for {self.name}: {e}")
