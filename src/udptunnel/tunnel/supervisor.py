"""
Tunnel supervisor.

Runs one RelayEngine after another until a run ends cleanly or the restart
budget is spent. Every attempt builds its sockets from scratch; traffic that
was in flight when a run failed is lost.
"""

import asyncio

from udptunnel.config import TunnelConfig
from udptunnel.exceptions import ConfigError
from udptunnel.tunnel.relay import RelayEngine, RelayStats
from udptunnel.utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_MAX_RESTARTS: int = 3
DEFAULT_BACKOFF_BASE: float = 1.0
DEFAULT_BACKOFF_MAX: float = 30.0


class TunnelSupervisor:
    """Restart a failing tunnel with bounded exponential backoff."""

    def __init__(
        self,
        config: TunnelConfig,
        max_restarts: int = DEFAULT_MAX_RESTARTS,
        backoff_base: float = DEFAULT_BACKOFF_BASE,
        backoff_max: float = DEFAULT_BACKOFF_MAX,
        restart_on_close: bool = False,
    ):
        """
        Initialize tunnel supervisor.

        Args:
            config: Configuration shared by every attempt.
            max_restarts: Consecutive restarts allowed before giving up. A run
                that reached RELAYING resets the count.
            backoff_base: Delay before the first restart, doubled each time.
            backoff_max: Upper bound of the delay.
            restart_on_close: Reconnect after the tunnel peer closes instead of
                returning.
        """
        self.config = config
        self.max_restarts = max_restarts
        self.backoff_base = backoff_base
        self.backoff_max = backoff_max
        self.restart_on_close = restart_on_close

        self.restarts = 0
        self.engine: RelayEngine | None = None

    async def run(self) -> RelayStats:
        """
        Supervise tunnel runs.

        Returns:
            Counters of the last run

        Raises:
            ConfigError: Never retried.
            Exception: The last failure once the restart budget is spent.
        """
        while True:
            self.engine = RelayEngine(self.config)

            try:
                stats = await self.engine.run()
            except ConfigError:
                raise
            except Exception as e:
                self._note_progress()
                if not self._can_restart():
                    logger.error(
                        f"[Supervisor] Giving up after {self.restarts} restarts: {e}"
                    )
                    raise
                await self._backoff(str(e))
                continue

            self._note_progress()
            if not self.restart_on_close:
                return stats
            if not self._can_restart():
                logger.error(
                    f"[Supervisor] Tunnel closed {self.restarts + 1} times in a row, "
                    "not reconnecting"
                )
                return stats
            await self._backoff("tunnel peer closed")

    def _note_progress(self) -> None:
        if self.engine.reached_relaying:
            self.restarts = 0

    def _can_restart(self) -> bool:
        return self.restarts < self.max_restarts

    def next_delay(self) -> float:
        """Delay before the next restart."""
        return min(self.backoff_base * (2**self.restarts), self.backoff_max)

    async def _backoff(self, reason: str) -> None:
        delay = self.next_delay()
        self.restarts += 1
        logger.warning(
            f"[Supervisor] Restart {self.restarts}/{self.max_restarts} "
            f"in {delay:.1f}s: {reason}"
        )
        await asyncio.sleep(delay)
