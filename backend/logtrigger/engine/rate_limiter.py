"""Rate limiter: repeated chain runs with windowed suppression."""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from logtrigger.config import get_settings
from logtrigger.engine.chain_executor import ChainExecutor
from logtrigger.engine.recipe import Recipe
from logtrigger.engine.results import ChainRun, Firing, LimitationSummary
from logtrigger.engine.timestamps import format_duration, parse_duration
from logtrigger.schemas.trigger import Limitation

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LimitationRun:
    """Firings found by repeated chain runs, plus the run that ended the scan."""

    firings: tuple[Firing, ...] = field(default_factory=tuple)
    last_failed_run: ChainRun | None = None

    @property
    def allowed(self) -> list[Firing]:
        return [f for f in self.firings if not f.suppressed]

    @property
    def suppressed(self) -> list[Firing]:
        return [f for f in self.firings if f.suppressed]

    @property
    def first_run(self) -> ChainRun | None:
        if self.firings:
            return self.firings[0].chain_run
        return self.last_failed_run


def is_suppressed(
    firing_timestamp: datetime | None,
    prior: list[Firing],
    times: int | None,
    window: timedelta | None,
) -> bool:
    """Check a new firing against the allowed firings before it.

    Suppressed when at least ``times`` allowed firings lie within ``window``
    before it. Untimestamped firings and unlimited ``times`` never suppress.
    """
    if times is None or window is None or firing_timestamp is None:
        return False

    recent = [
        f
        for f in prior
        if not f.suppressed
        and f.firing_timestamp is not None
        and firing_timestamp - f.firing_timestamp <= window
    ]
    return len(recent) >= times


class RateLimiter:
    """Runs a recipe repeatedly over a log and classifies each firing.

    Suppression decisions are made once, in firing order, and never revised.
    """

    def __init__(self, executor: ChainExecutor, max_firings: int | None = None):
        """Initialize limiter.

        Args:
            executor: Chain executor used for each attempt
            max_firings: Cap on chain attempts (defaults to settings)
        """
        self.executor = executor
        self.max_firings = max_firings or get_settings().max_firings

    def evaluate_with_limitation(
        self,
        recipe: Recipe,
        lines: list[str],
        limitation: Limitation,
    ) -> LimitationRun:
        """Find every firing in the log and apply the limitation.

        Args:
            recipe: Recipe to run
            lines: All log lines
            limitation: Rate limitation (times per duration)

        Returns:
            LimitationRun with the firings in order and the failed run that
            ended the scan, if any
        """
        window = parse_duration(limitation.duration)
        firings: list[Firing] = []
        last_failed_run: ChainRun | None = None
        offset = 0
        attempts = 0

        while offset < len(lines) and attempts < self.max_firings:
            attempts += 1
            run = self.executor.run(recipe, lines, offset)

            if not run.all_fired:
                last_failed_run = run
                break

            suppressed = is_suppressed(run.firing_timestamp, firings, limitation.times, window)
            if suppressed:
                logger.debug(
                    "Firing at %s suppressed (limit %s per %s)",
                    run.firing_timestamp,
                    limitation.times,
                    limitation.duration,
                )
            firings.append(
                Firing(
                    chain_run=run,
                    suppressed=suppressed,
                    firing_timestamp=run.firing_timestamp,
                )
            )

            # Always make progress, even when the run resumed where it began
            offset = run.resume_line_offset if run.resume_line_offset > offset else offset + 1

        if attempts >= self.max_firings and offset < len(lines):
            logger.warning("Firing limit (%d) reached at line %d", self.max_firings, offset + 1)

        return LimitationRun(firings=tuple(firings), last_failed_run=last_failed_run)

    @staticmethod
    def summarize(run: LimitationRun, limitation: Limitation) -> LimitationSummary:
        allowed = len(run.allowed)
        return LimitationSummary(
            times=limitation.times,
            duration=limitation.duration,
            duration_label=format_duration(limitation.duration),
            total_firings=len(run.firings),
            allowed_firings=allowed,
            suppressed_firings=len(run.firings) - allowed,
        )
