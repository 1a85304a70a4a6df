"""Staggered rotation across the connection pool.

Long-lived idle sessions on the remote service tend to degrade or get
silently dropped, so every connection is periodically cycled on purpose.
A full rotation visits the pool in a fixed, explicit order with a constant
gap between bots, so at most one connection is mid-rotation at any moment.

Each rotation is first planned as a list of :class:`RotationStep` objects
(offset from rotation start, pool index) and only then handed to the
clock, which keeps the order and spacing testable without real timers.

Classes:
    RotationStep: One ``(offset, pool_index)`` entry of a plan.
    RotationPlan: Steps plus the offset of the completion callback.
    RotationScheduler: Arms the grace timer, the recurring cycle and the
        per-rotation step timers.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Sequence

from core.clock import Clock, TimerHandle
from core.pool import ConnectionPool

logger = logging.getLogger(__name__)

DEFAULT_GRACE_PERIOD = 120.0
DEFAULT_INTERVAL = 30 * 60.0
DEFAULT_PER_BOT_DELAY = 30.0
DEFAULT_COMPLETION_DELAY = 10.0


@dataclass(frozen=True)
class RotationStep:
    """Rotate ``pool[index]`` at ``offset`` seconds after rotation start."""

    offset: float
    index: int


@dataclass(frozen=True)
class RotationPlan:
    steps: List[RotationStep] = field(default_factory=list)
    completion_offset: float = 0.0

    @property
    def duration(self) -> float:
        return self.completion_offset


def validate_sequence(sequence: Sequence[int], pool_size: int) -> List[int]:
    """Ensure *sequence* is a permutation of ``range(pool_size)``."""
    ordered = list(sequence)
    if sorted(ordered) != list(range(pool_size)):
        raise ValueError(
            f"Rotation sequence {ordered} is not a permutation of pool indices 0..{pool_size - 1}"
        )
    return ordered


class RotationScheduler:
    """Drives periodic full rotations over a :class:`ConnectionPool`.

    Attributes:
        sequence: Pool indices in visiting order.
        cycle_count: Number of completed full rotations.
        active_timers: Step/completion timers of the in-flight rotation.
    """

    def __init__(
        self,
        pool: ConnectionPool,
        clock: Clock,
        sequence: Optional[Sequence[int]] = None,
        grace_period: float = DEFAULT_GRACE_PERIOD,
        interval: float = DEFAULT_INTERVAL,
        per_bot_delay: float = DEFAULT_PER_BOT_DELAY,
        completion_delay: float = DEFAULT_COMPLETION_DELAY,
        on_complete: Optional[Callable[[int], None]] = None,
    ):
        self.pool = pool
        self.clock = clock
        self.sequence = validate_sequence(
            sequence if sequence is not None else range(len(pool)), len(pool)
        )
        self.grace_period = grace_period
        self.interval = interval
        self.per_bot_delay = per_bot_delay
        self.completion_delay = completion_delay
        self.on_complete = on_complete

        self.cycle_count = 0
        self.active_timers: List[TimerHandle] = []
        self._grace_timer: Optional[TimerHandle] = None
        self._grace_due: Optional[float] = None
        self._interval_timer: Optional[TimerHandle] = None
        self._interval_due: Optional[float] = None
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    @property
    def next_rotation_at(self) -> Optional[float]:
        """Clock time of the next rotation start, if one is armed."""
        if self._grace_timer is not None:
            return self._grace_due
        if self._interval_timer is not None:
            return self._interval_due
        return None

    @property
    def in_progress(self) -> bool:
        return bool(self.active_timers)

    def _names(self) -> str:
        return " → ".join(self.pool[i].name for i in self.sequence)

    def start(self) -> None:
        """Arm the grace-period rotation and the recurring cycle."""
        if self._running:
            logger.warning("Rotation scheduler already running")
            return
        self._running = True

        minutes = self.interval / 60
        logger.info(f"🔄 STARTING FULL ROTATION EVERY {minutes:g} MINUTES")
        logger.info(f"Each rotation: {self._names()} (with {self.per_bot_delay:g}s delays)")
        logger.info(
            f"Full rotation completes in {self.plan_rotation().duration:g}s, "
            f"then repeats every {minutes:g} minutes"
        )

        self._grace_timer = self.clock.call_later(self.grace_period, self._on_grace_elapsed)
        self._grace_due = self.clock.time() + self.grace_period
        self._arm_interval()

    def plan_rotation(self) -> RotationPlan:
        """Build the step list for one full rotation."""
        steps = [
            RotationStep(offset=position * self.per_bot_delay, index=index)
            for position, index in enumerate(self.sequence)
        ]
        last_offset = steps[-1].offset if steps else 0.0
        return RotationPlan(steps=steps, completion_offset=last_offset + self.completion_delay)

    def run_full_rotation(self) -> RotationPlan:
        """Schedule every step of one rotation, relative to now."""
        if self.active_timers:
            logger.warning("Previous rotation still in progress; cancelling its remaining steps")
            self._cancel_active()

        number = self.cycle_count + 1
        logger.info(f"🔄 FULL ROTATION #{number} STARTING")
        plan = self.plan_rotation()
        for step in plan.steps:
            self.active_timers.append(
                self.clock.call_later(step.offset, self._rotate_index, step.index)
            )
        self.active_timers.append(
            self.clock.call_later(plan.completion_offset, self._complete_rotation, number)
        )
        return plan

    def stop(self) -> None:
        """Cancel the recurring cycle and any in-flight rotation steps."""
        if self._grace_timer is not None:
            self._grace_timer.cancel()
            self._grace_timer = None
        if self._interval_timer is not None:
            self._interval_timer.cancel()
            self._interval_timer = None
        self._cancel_active()
        if self._running:
            logger.info("Rotation scheduler stopped")
        self._running = False

    # ------------------------------------------------------------------

    def _on_grace_elapsed(self) -> None:
        self._grace_timer = None
        if not self._running:
            return
        self.run_full_rotation()

    def _arm_interval(self) -> None:
        self._interval_timer = self.clock.call_later(self.interval, self._on_interval)
        self._interval_due = self.clock.time() + self.interval

    def _on_interval(self) -> None:
        self._interval_timer = None
        if not self._running:
            return
        self._arm_interval()
        self.run_full_rotation()

    def _rotate_index(self, index: int) -> None:
        connection = self.pool[index]
        if connection.stopped:
            logger.debug("Skipping rotation of stopped connection %s", connection.name)
            return
        logger.info(f"🔄 Rotating {connection.name}...")
        try:
            connection.rotate()
        except Exception as e:
            logger.error(f"Rotation of {connection.name} failed: {e}", exc_info=True)

    def _complete_rotation(self, number: int) -> None:
        self.active_timers.clear()
        self.cycle_count += 1
        logger.info(f"✅ FULL ROTATION #{number} COMPLETED")
        logger.info(
            f"📊 Current status: {self.pool.connected_count()}/{len(self.pool)} bots connected"
        )
        if self.next_rotation_at is not None:
            wait = max(0.0, self.next_rotation_at - self.clock.time())
            next_time = datetime.now() + timedelta(seconds=wait)
            logger.info(f"⏭️ Next full rotation: {next_time.strftime('%H:%M:%S')}")
        if self.on_complete is not None:
            self.on_complete(self.cycle_count)

    def _cancel_active(self) -> None:
        for handle in self.active_timers:
            handle.cancel()
        self.active_timers.clear()
