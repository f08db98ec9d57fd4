"""Resync loop that triggers reconciliation passes.

The reconciler performs no retry scheduling of its own. This loop decides
when the next pass runs:

- CONVERGED: wait the resync interval
- PROGRESSED / NOT_READY: requeue after the short requeue interval
- FAILED: exponential backoff from the requeue interval, capped at the
  resync interval; after MAX_CONSECUTIVE_FAILURES the circuit opens for
  CIRCUIT_BREAKER_RESET_SECONDS

After every pass the projected status is written back to the desired-state
file.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import UTC, datetime, timedelta
from pathlib import Path

from .config import Config
from .reconciler import ConsoleReconciler, PassResult, PassState
from .spec_loader import SpecLoadError, load_console, load_or_create_console, save_console

logger = logging.getLogger(__name__)

# Circuit breaker constants
MAX_CONSECUTIVE_FAILURES = 5
CIRCUIT_BREAKER_RESET_SECONDS = 300  # 5 minutes


class ResyncTrigger:
    """Runs passes on a schedule until shutdown."""

    def __init__(
        self,
        reconciler: ConsoleReconciler,
        console_file: Path,
        resync_interval_seconds: float,
        requeue_interval_seconds: float,
        create_default_console: bool = False,
    ) -> None:
        self._reconciler = reconciler
        self._console_file = console_file
        self._resync_interval = resync_interval_seconds
        self._requeue_interval = requeue_interval_seconds
        self._create_default_console = create_default_console

        self._shutdown_event = asyncio.Event()

        # Circuit breaker state
        self._consecutive_failures = 0
        self._circuit_open_until: datetime | None = None

    @classmethod
    def from_config(cls, config: Config, reconciler: ConsoleReconciler) -> ResyncTrigger:
        return cls(
            reconciler,
            console_file=config.console_file,
            resync_interval_seconds=config.resync_interval_seconds,
            requeue_interval_seconds=config.requeue_interval_seconds,
            create_default_console=config.create_default_console,
        )

    @property
    def consecutive_failures(self) -> int:
        return self._consecutive_failures

    @property
    def circuit_open(self) -> bool:
        if self._circuit_open_until is None:
            return False
        return datetime.now(UTC) < self._circuit_open_until

    async def run(self) -> None:
        """Run passes until shutdown() is called."""
        logger.info(
            "Starting resync loop",
            extra={
                "console_file": str(self._console_file),
                "resync_interval_seconds": self._resync_interval,
                "requeue_interval_seconds": self._requeue_interval,
            },
        )

        while not self._shutdown_event.is_set():
            if self._circuit_open_until is not None:
                now = datetime.now(UTC)
                if now < self._circuit_open_until:
                    remaining = (self._circuit_open_until - now).total_seconds()
                    logger.warning(
                        "Circuit breaker open, skipping pass",
                        extra={
                            "remaining_seconds": remaining,
                            "consecutive_failures": self._consecutive_failures,
                        },
                    )
                    await self._wait(min(remaining, self._resync_interval))
                    continue

                logger.info("Circuit breaker reset, resuming passes")
                self._circuit_open_until = None
                self._consecutive_failures = 0

            # Passes block on the backend; keep the loop free for signals.
            loop = asyncio.get_running_loop()
            result = await loop.run_in_executor(None, self.trigger_once)
            await self._wait(self.next_delay(result))

        logger.info("Resync loop shutdown complete")

    def shutdown(self) -> None:
        """Signal the loop to stop."""
        logger.info("Shutdown requested")
        self._shutdown_event.set()

    async def _wait(self, seconds: float) -> None:
        try:
            await asyncio.wait_for(self._shutdown_event.wait(), timeout=seconds)
        except TimeoutError:
            # Normal timeout, continue to next pass
            pass

    def trigger_once(self) -> PassResult | None:
        """Load the desired state, run one pass and persist its status.

        Returns None when the desired state could not be loaded.
        """
        try:
            console = load_or_create_console(self._console_file, self._create_default_console)
        except SpecLoadError as e:
            logger.error("Failed to load console", extra={"error": str(e)})
            self._record_failure()
            return None

        result = self._reconciler.run_pass(console)

        if result.state == PassState.FAILED:
            self._record_failure()
        else:
            self._consecutive_failures = 0

        try:
            self._persist_status(result)
        except SpecLoadError as e:
            logger.error("Failed to persist console status", extra={"error": str(e)})

        return result

    def _persist_status(self, result: PassResult) -> None:
        # Re-read so spec edits made while the pass ran are kept.
        current = load_console(self._console_file)
        if current.status == result.console.status:
            return
        save_console(self._console_file, current.with_status(result.console.status))
        logger.info(
            "Console status updated",
            extra={
                "default_host_name": result.console.status.default_host_name,
                "oauth_secret": result.console.status.oauth_secret.value,
            },
        )

    def _record_failure(self) -> None:
        self._consecutive_failures += 1
        if self._consecutive_failures >= MAX_CONSECUTIVE_FAILURES:
            self._circuit_open_until = datetime.now(UTC) + timedelta(
                seconds=CIRCUIT_BREAKER_RESET_SECONDS
            )
            logger.error(
                "Circuit breaker opened after consecutive failures",
                extra={
                    "consecutive_failures": self._consecutive_failures,
                    "reset_seconds": CIRCUIT_BREAKER_RESET_SECONDS,
                },
            )

    def next_delay(self, result: PassResult | None) -> float:
        """Seconds to wait before the next pass."""
        if result is not None and result.state == PassState.CONVERGED:
            return self._resync_interval
        if result is not None and result.state in (PassState.PROGRESSED, PassState.NOT_READY):
            return self._requeue_interval

        # Failed pass or unreadable desired state
        backoff = self._requeue_interval * (2 ** max(self._consecutive_failures - 1, 0))
        return min(backoff, self._resync_interval)
