"""Chain executor: advances one traversal of a recipe over a list of lines.

Steps run strictly in sequence with no backtracking. A KEYWORD step fires
once enough of its patterns have matched (inside its time window, when it
has one). A DELAY step has inverted semantics: a match inside the window
cancels the pending action and resets the chain, while the window elapsing
or the log ending is the normal path into ``next``.
"""

import logging
from datetime import datetime
from enum import Enum

from logtrigger.config import get_settings
from logtrigger.engine.matcher import TriggerItemMatcher
from logtrigger.engine.recipe import RESET_LABEL, Recipe, next_action_label
from logtrigger.engine.results import ChainRun, DurationCheck, Match, RejectedMatch, StepResult
from logtrigger.engine.timestamps import TimestampExtractor, format_duration, parse_duration
from logtrigger.schemas.trigger import RecipeStep, is_terminal_action

logger = logging.getLogger(__name__)


class StepSignal(str, Enum):
    """Terminal outcome of scanning one step."""

    FIRED = "fired"
    CANCELLED = "cancelled"
    TIMED_OUT = "timed_out"


class StepScanner:
    """Per-step state machine fed one line at a time.

    Owns the sliding match buffer of a single step execution. Used by the
    chain executor for sequential runs and by the multi-instance coordinator
    for each live instance.
    """

    def __init__(
        self,
        step: RecipeStep,
        name: str,
        prev_timestamp: datetime | None = None,
        timestamps_enabled: bool = False,
        captures: dict[str, str | None] | None = None,
    ):
        """Initialize scanner.

        Args:
            step: Recipe step to scan for
            name: Display name of the step
            prev_timestamp: Last match timestamp of the previous step
            timestamps_enabled: Whether lines carry parsable timestamps
            captures: MULTI instance captures for ``@<<name>>@`` references
        """
        self.step = step
        self.name = name
        self.prev_timestamp = prev_timestamp
        self.duration = parse_duration(step.duration)
        self.duration_label = format_duration(step.duration)
        self.check_window = bool(self.duration) and timestamps_enabled

        self.matches: list[Match] = []
        self.rejected: list[RejectedMatch] = []
        self.errors: dict[str, None] = {}
        self.tested_line_count = 0
        self.duration_check: DurationCheck | None = None
        self.signal: StepSignal | None = None
        self.resume_offset: int | None = None

        self._matcher = TriggerItemMatcher(step.trigger, captures)

    def feed(self, line_number: int, line: str, timestamp: datetime | None) -> StepSignal | None:
        """Process one line; returns a signal once the step is decided."""
        if self.signal is not None:
            return self.signal

        self.tested_line_count += 1
        step = self.step

        if step.is_delay and self.duration and self.prev_timestamp and timestamp:
            elapsed = timestamp - self.prev_timestamp
            if elapsed > self.duration:
                return self._time_out(line_number, elapsed)

        outcome = self._matcher.match_line(line_number, line, timestamp)
        self.rejected.extend(outcome.rejected)
        for error in outcome.errors:
            self.errors.setdefault(error, None)

        if outcome.match is None:
            return None

        self.matches.append(outcome.match)
        if len(self.matches) < step.times:
            return None

        if not self.check_window:
            return self._fire(line_number)

        window_start = self.matches[-step.times].timestamp
        latest = self.matches[-1].timestamp
        reference = self.prev_timestamp or window_start

        if reference is None or latest is None:
            return self._fire(
                line_number,
                DurationCheck(
                    passed=True,
                    limit=self.duration,
                    message="Timestamp not parsable - duration check skipped",
                ),
            )

        elapsed = latest - reference
        if elapsed <= self.duration:
            message = f"Matched within {self.duration_label} -> reset chain" if step.is_delay else None
            return self._fire(
                line_number,
                DurationCheck(passed=True, elapsed=elapsed, limit=self.duration, message=message),
            )

        if step.is_delay:
            return self._time_out(line_number, elapsed)

        # Slide the window: drop the oldest match and keep scanning
        self.matches.pop(0)
        self.duration_check = DurationCheck(
            passed=False,
            elapsed=elapsed,
            limit=self.duration,
            message=f"More matches needed within {self.duration_label}",
        )
        return None

    def _fire(self, line_number: int, check: DurationCheck | None = None) -> StepSignal:
        self.signal = StepSignal.CANCELLED if self.step.is_delay else StepSignal.FIRED
        self.resume_offset = line_number
        if check is not None:
            self.duration_check = check
        return self.signal

    def _time_out(self, line_number: int, elapsed) -> StepSignal:
        # The line that proved the timeout is left for the next step
        self.signal = StepSignal.TIMED_OUT
        self.resume_offset = line_number - 1
        self.duration_check = DurationCheck(
            passed=False,
            elapsed=elapsed,
            limit=self.duration,
            message=f"Exceeded {self.duration_label} -> timeout (normal path)",
        )
        return self.signal

    @property
    def fired(self) -> bool:
        return self.signal in (StepSignal.FIRED, StepSignal.CANCELLED)

    def finish(self) -> StepResult:
        """Close the scan (end of log if undecided) and build the result."""
        step = self.step

        if not self.fired and self.duration and self.matches and self.duration_check is None:
            self.duration_check = DurationCheck(
                passed=False,
                limit=self.duration,
                message=f"{step.times} match(es) needed within {self.duration_label}",
            )

        if step.is_delay and self.signal is None:
            self.signal = StepSignal.TIMED_OUT
            if self.duration_check is None:
                self.duration_check = DurationCheck(
                    passed=False,
                    limit=self.duration,
                    message="End of log -> timeout (normal path)",
                )

        cancelled = self.signal == StepSignal.CANCELLED
        reset_chain = cancelled and bool(step.next)
        return StepResult(
            name=self.name,
            type=step.type,
            patterns=tuple(step.patterns),
            required_times=step.times,
            duration=step.duration,
            fired=self.fired,
            cancelled=cancelled,
            timed_out=step.is_delay and not self.fired,
            reset_chain=reset_chain,
            matches=tuple(self.matches),
            rejected_matches=tuple(self.rejected),
            regex_errors=tuple(self.errors),
            tested_line_count=self.tested_line_count,
            next_action=RESET_LABEL if reset_chain else next_action_label(step),
            duration_check=self.duration_check,
        )


def timeout_moment(prev_timestamp: datetime | None, step: RecipeStep) -> datetime | None:
    """When a delay step's window elapsed: previous step time + duration."""
    if prev_timestamp is None:
        return None
    duration = parse_duration(step.duration)
    return prev_timestamp + duration if duration else prev_timestamp


class ChainExecutor:
    """Runs one chain traversal at a time.

    A pure function of (recipe, lines, offset): no state is shared between
    runs, so the rate limiter can replay it at increasing offsets.
    """

    def __init__(
        self,
        extractor: TimestampExtractor | None = None,
        max_resets: int | None = None,
    ):
        """Initialize executor.

        Args:
            extractor: Timestamp extractor for the log format
            max_resets: Cap on consecutive delay-cancel resets (defaults to settings)
        """
        self.extractor = extractor
        self.max_resets = max_resets or get_settings().max_chain_resets

    def timestamp_of(self, line: str) -> datetime | None:
        if self.extractor is None:
            return None
        return self.extractor.extract(line)

    def scanner_for(
        self,
        recipe: Recipe,
        index: int,
        prev_timestamp: datetime | None,
        captures: dict[str, str | None] | None = None,
    ) -> StepScanner:
        return StepScanner(
            recipe.steps[index],
            recipe.names[index],
            prev_timestamp=prev_timestamp,
            timestamps_enabled=self.extractor is not None,
            captures=captures,
        )

    def run(self, recipe: Recipe, lines: list[str], start_offset: int = 0) -> ChainRun:
        """Execute one chain run starting at a line offset.

        Args:
            recipe: Recipe to traverse
            lines: All log lines
            start_offset: 0-based index of the first line to scan

        Returns:
            ChainRun with per-step results, success flag, resume offset and
            firing timestamp
        """
        results: list[StepResult] = []
        index = 0
        offset = start_offset
        resets = 0
        stalled = 0
        prev_timestamp: datetime | None = None
        completed = False
        firing_timestamp: datetime | None = None

        while index < len(recipe) and offset <= len(lines):
            step = recipe.steps[index]
            scanner = self.scanner_for(recipe, index, prev_timestamp)
            for line_index in range(offset, len(lines)):
                line = lines[line_index]
                if scanner.feed(line_index + 1, line, self.timestamp_of(line)):
                    break

            result = scanner.finish()
            results.append(result)

            step_offset = offset
            if scanner.resume_offset is not None:
                offset = scanner.resume_offset
            stalled = stalled + 1 if offset == step_offset else 0

            if not result.fired:
                if step.is_delay and step.next:
                    if is_terminal_action(step.next):
                        completed = True
                        firing_timestamp = timeout_moment(prev_timestamp, step)
                        break
                    target = recipe.resolve(step.next)
                    if target is not None:
                        if stalled > len(recipe):
                            logger.warning(
                                "Chain stalled in delay timeouts at %s; stopping", result.name
                            )
                            break
                        index = target
                        continue
                    logger.debug("Step %s: unresolved next %r", result.name, step.next)
                break

            if step.is_delay:
                if not step.next:
                    # Nothing pending to cancel: the delay acts as a plain match
                    completed = True
                    firing_timestamp = result.last_timestamp
                    break
                resets += 1
                if resets > self.max_resets:
                    logger.warning(
                        "Chain reset limit (%d) reached at %s; stopping", self.max_resets, result.name
                    )
                    break
                index = 0
                prev_timestamp = None
                continue

            if not step.next or is_terminal_action(step.next):
                completed = True
                firing_timestamp = result.last_timestamp
                break

            target = recipe.resolve(step.next)
            if target is None:
                logger.debug("Step %s: unresolved next %r", result.name, step.next)
                break
            if result.last_timestamp is not None:
                prev_timestamp = result.last_timestamp
            index = target

        logger.debug(
            "Chain run from offset %d: %d step(s), fired=%s, resume at %d",
            start_offset,
            len(results),
            completed,
            offset,
        )
        return ChainRun(
            step_results=tuple(results),
            all_fired=completed,
            resume_line_offset=offset,
            firing_timestamp=firing_timestamp if completed else None,
        )
