"""Farm orchestration for the presence bot farm.

:class:`PresenceFarm` is the single owning context built at startup.  It
holds the connection pool, the rotation scheduler and the status reporter,
runs the staggered bootstrap and performs the orderly shutdown.  Signal
handlers receive the farm instance instead of reaching for globals.

Bootstrap timeline (defaults)::

    t = 0, 8, 16, 24, 32 s   start BOT1..BOT5
    t = 0 s                  heartbeat armed (every 300 s)
    t = 52 s                 rotation scheduler armed
    t = 82 s                 initial status line
    t = 172 s                first full rotation (grace period 120 s)
"""

import logging
import random
from datetime import datetime, timedelta
from typing import List, Optional, Sequence

from rich.console import Console

from connectors.base import Connector
from core.clock import Clock, LoopClock, TimerHandle
from core.config import BotSettings, Identity
from core.connection import ManagedConnection
from core.errors import ErrorFilter
from core.pool import ConnectionPool
from core.registry import get_connector_class
from core.rotation import RotationScheduler
from core.status import StatusReporter

logger = logging.getLogger(__name__)


class PresenceFarm:
    """Owns every long-lived component of a running farm."""

    def __init__(
        self,
        settings: BotSettings,
        connector: Connector,
        clock: Clock,
        identities: Optional[Sequence[Identity]] = None,
        console: Optional[Console] = None,
        rng: Optional[random.Random] = None,
    ):
        self.settings = settings
        self.connector = connector
        self.clock = clock
        self.error_filter = ErrorFilter.from_patterns(settings.ignored_error_patterns)

        if identities is None:
            identities = settings.enabled_identities()
        endpoint = settings.endpoint()
        retry_policy = settings.retry_policy()
        self.pool = ConnectionPool([
            ManagedConnection(
                identity,
                connector,
                endpoint,
                clock,
                retry_policy=retry_policy,
                safety_timeout=settings.safety_timeout,
                rotation_reconnect_delay=settings.rotation_reconnect_delay,
                error_filter=self.error_filter,
                rng=rng,
            )
            for identity in identities
        ])

        self.scheduler = RotationScheduler(
            self.pool,
            clock,
            sequence=settings.resolve_rotation_sequence(len(self.pool)),
            grace_period=settings.rotation_grace_period,
            interval=settings.rotation_interval,
            per_bot_delay=settings.rotation_per_bot_delay,
            completion_delay=settings.rotation_completion_delay,
        )
        self.reporter = StatusReporter(
            self.pool, clock, interval=settings.status_interval, console=console
        )

        self._bootstrap_timers: List[TimerHandle] = []
        self._bootstrapped = False
        self._shut_down = False

    @classmethod
    def from_settings(
        cls,
        settings: BotSettings,
        clock: Optional[Clock] = None,
        identities: Optional[Sequence[Identity]] = None,
        console: Optional[Console] = None,
    ) -> "PresenceFarm":
        """Build a farm using the connector named in *settings*.

        Raises:
            ValueError: If the connector name is not registered.
        """
        connector_cls = get_connector_class(settings.connector)
        if connector_cls is None:
            raise ValueError(f"Unknown connector: {settings.connector}")
        return cls(
            settings,
            connector_cls(),
            clock or LoopClock(),
            identities=identities,
            console=console,
        )

    @property
    def shut_down(self) -> bool:
        return self._shut_down

    def bootstrap(self) -> None:
        """Start every connection with a stagger, then arm the background jobs."""
        if self._bootstrapped:
            raise RuntimeError("Farm already bootstrapped")
        self._bootstrapped = True

        if len(self.pool) == 0:
            logger.warning("No enabled accounts configured; nothing to connect")
            return

        logger.info("🚀 Initial bot startup sequence:")
        stagger = self.settings.startup_stagger
        for index in range(len(self.pool)):
            self._bootstrap_timers.append(
                self.clock.call_later(index * stagger, self._start_connection, index)
            )

        last_start = (len(self.pool) - 1) * stagger
        self._bootstrap_timers.append(
            self.clock.call_later(
                last_start + self.settings.rotation_start_delay, self._start_background
            )
        )
        self.reporter.start()

    def shutdown(self) -> None:
        """Stop rotation, the heartbeat and every connection.  Idempotent."""
        if self._shut_down:
            return
        self._shut_down = True
        logger.info("Stopping all bots and rotation...")

        for handle in self._bootstrap_timers:
            handle.cancel()
        self._bootstrap_timers.clear()

        self.scheduler.stop()
        self.reporter.stop()
        self.pool.stop_all()

    # ------------------------------------------------------------------

    def _start_connection(self, index: int) -> None:
        if self._shut_down:
            return
        connection = self.pool[index]
        try:
            connection.start()
        except RuntimeError as e:
            logger.warning(f"Could not start {connection.name}: {e}")

    def _start_background(self) -> None:
        if self._shut_down:
            return
        if self.settings.rotation_enabled:
            self.scheduler.start()
        else:
            logger.info("Rotation disabled; bots will only reconnect on failure")
        self._bootstrap_timers.append(
            self.clock.call_later(self.settings.initial_status_delay, self._initial_status)
        )

    def _initial_status(self) -> None:
        if self._shut_down:
            return
        snapshot = self.reporter.report()
        logger.info("📊 INITIAL STATUS: startup sequence complete")
        logger.info(f"📊 Current status: {snapshot.summary}")
        next_at = self.scheduler.next_rotation_at
        if next_at is not None:
            wait = max(0.0, next_at - self.clock.time())
            first = datetime.now() + timedelta(seconds=wait)
            logger.info(f"🔄 First full rotation starts at: {first.strftime('%H:%M:%S')}")
