"""Periodic aggregate status output.

Emits a heartbeat log line with the connected/total count on a fixed
cadence.  When a :class:`rich.console.Console` is supplied, a per-bot
table is printed as well.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from rich import box
from rich.console import Console
from rich.table import Table
from rich.text import Text

from core.clock import Clock, TimerHandle
from core.connection import ConnectionSnapshot
from core.pool import ConnectionPool

logger = logging.getLogger(__name__)

DEFAULT_STATUS_INTERVAL = 300.0

STATE_STYLES = {
    "connected": "green",
    "connecting": "yellow",
    "disconnecting": "magenta",
    "idle": "red",
}


@dataclass
class StatusSnapshot:
    connected: int
    total: int
    entries: List[ConnectionSnapshot] = field(default_factory=list)

    @property
    def summary(self) -> str:
        return f"{self.connected}/{self.total} bots connected"


class StatusReporter:
    """Heartbeat emitter reading from a :class:`ConnectionPool`."""

    def __init__(
        self,
        pool: ConnectionPool,
        clock: Clock,
        interval: float = DEFAULT_STATUS_INTERVAL,
        console: Optional[Console] = None,
    ):
        self.pool = pool
        self.clock = clock
        self.interval = interval
        self.console = console
        self._timer: Optional[TimerHandle] = None

    def report(self) -> StatusSnapshot:
        return StatusSnapshot(
            connected=self.pool.connected_count(),
            total=len(self.pool),
            entries=self.pool.snapshot(),
        )

    def render_table(self, snapshot: Optional[StatusSnapshot] = None) -> Table:
        """Render a per-bot status table."""
        snapshot = snapshot or self.report()
        table = Table(
            title=f"Bots ({snapshot.summary})",
            box=box.ROUNDED,
            show_header=True,
            header_style="bold cyan",
        )
        table.add_column("Bot", style="bold")
        table.add_column("State")
        table.add_column("Attempts", justify="right")
        table.add_column("Connects", justify="right")
        table.add_column("Up for", justify="right")
        table.add_column("Last disconnect")

        now = self.clock.time()
        for entry in snapshot.entries:
            state = Text(entry.state, style=STATE_STYLES.get(entry.state, "white"))
            if entry.stopped:
                state.append(" (stopped)", style="dim")
            if entry.connected_since is not None:
                uptime = _format_duration(now - entry.connected_since)
            else:
                uptime = "-"
            table.add_row(
                entry.name,
                state,
                str(entry.attempt_count),
                str(entry.total_connects),
                uptime,
                entry.last_disconnect_reason or "-",
            )
        return table

    def emit(self) -> StatusSnapshot:
        """Log the heartbeat line (and print the table if enabled)."""
        snapshot = self.report()
        logger.info(f"📊 HEARTBEAT: {snapshot.summary}")
        if self.console is not None:
            self.console.print(self.render_table(snapshot))
        return snapshot

    def start(self) -> None:
        if self._timer is not None:
            return
        self._timer = self.clock.call_later(self.interval, self._tick)

    def stop(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _tick(self) -> None:
        self._timer = self.clock.call_later(self.interval, self._tick)
        try:
            self.emit()
        except Exception as e:
            logger.warning(f"Status report failed: {e}")


def _format_duration(seconds: float) -> str:
    seconds = max(0, int(seconds))
    hours, rem = divmod(seconds, 3600)
    minutes, secs = divmod(rem, 60)
    if hours:
        return f"{hours}h{minutes:02d}m"
    if minutes:
        return f"{minutes}m{secs:02d}s"
    return f"{secs}s"
