"""Trigger tester service.

This service handles:
- Single-chain evaluation of a trigger against a log
- Repeated evaluation under a rate limitation
- MULTI evaluation with key-correlated instances
- Evaluation across several named log files
"""

import logging
from dataclasses import replace
from typing import Any

from logtrigger.config import Settings, get_settings
from logtrigger.engine.chain_executor import ChainExecutor
from logtrigger.engine.multi_instance import MultiInstanceCoordinator
from logtrigger.engine.rate_limiter import LimitationRun, RateLimiter
from logtrigger.engine.recipe import Recipe
from logtrigger.engine.results import (
    ChainRun,
    FinalResult,
    Firing,
    Instance,
    LimitationSummary,
    Match,
    StepResult,
    TriggerTestResult,
)
from logtrigger.engine.timestamps import build_extractor
from logtrigger.schemas.trigger import LogFile, TriggerConfig, is_terminal_action

logger = logging.getLogger(__name__)

NO_STEPS_MESSAGE = "Recipe has no steps"
NO_SPAWN_MESSAGE = "No line matched the step 1 pattern"

# (file name, 1-based line number within the file), indexed by global line
LineMap = list[tuple[str, int]]


def split_lines(log_text: str | None) -> list[str]:
    """Split log text on newlines, dropping a trailing carriage return per line."""
    lines = (log_text or "").split("\n")
    return [line[:-1] if line.endswith("\r") else line for line in lines]


def chain_message(recipe: Recipe, run: ChainRun) -> str:
    """Explain the outcome of a single chain run."""
    last = run.last_step
    if last is None:
        return NO_STEPS_MESSAGE

    step = recipe.step_named(last.name)
    if run.all_fired:
        if step is not None and is_terminal_action(step.next):
            return f"All steps completed {last.next_action}"
        return "All steps matched"

    if last.timed_out:
        if step is None or not step.next:
            return f"{last.name} timed out with no step to continue to"
        if recipe.resolve(step.next) is None:
            return f"Next step not found: {step.next}"
        # The executor only stops on a resolvable timeout when it made no progress
        return f"Stopped at {last.name}: delay timeouts made no progress"
    if not last.fired:
        return f"Waiting at {last.name} ({last.match_count}/{last.required_times} matches)"
    if last.reset_chain:
        return f"Chain reset limit reached at {last.name}"
    return f"Next step not found: {step.next if step is not None else ''}"


def limitation_message(recipe: Recipe, run: LimitationRun, summary: LimitationSummary) -> str:
    """Explain the outcome of an evaluation under a rate limitation."""
    if not recipe:
        return NO_STEPS_MESSAGE

    if not run.firings:
        if run.last_failed_run is None:
            return NO_STEPS_MESSAGE
        return chain_message(recipe, run.last_failed_run)

    last = run.firings[0].chain_run.last_step
    step = recipe.step_named(last.name)
    suffix = f" {last.next_action}" if step is not None and is_terminal_action(step.next) else ""

    if summary.suppressed_firings == 0:
        return f"All steps completed{suffix} ({summary.total_firings} fired, within limit)"

    label = summary.duration_label or summary.duration
    return (
        f"All steps completed{suffix} ({summary.total_firings} detected, "
        f"{summary.allowed_firings} fired, {summary.suppressed_firings} suppressed; "
        f"at most {summary.times} per {label})"
    )


def _locate(line_map: LineMap, line_number: int | None) -> tuple[str, int | None]:
    if line_number is None or not 1 <= line_number <= len(line_map):
        return "unknown", line_number
    return line_map[line_number - 1]


def _remap_match(match: Match, line_map: LineMap) -> Match:
    file_name, local_line = _locate(line_map, match.line_number)
    return replace(
        match,
        file_name=file_name,
        line_number=local_line,
        global_line_number=match.line_number,
    )


def _remap_step(step: StepResult, line_map: LineMap) -> StepResult:
    return replace(
        step,
        matches=tuple(_remap_match(m, line_map) for m in step.matches),
        rejected_matches=tuple(_remap_match(m, line_map) for m in step.rejected_matches),
    )


def _remap_firing(firing: Firing, line_map: LineMap) -> Firing:
    run = firing.chain_run
    return replace(
        firing,
        chain_run=replace(run, step_results=tuple(_remap_step(s, line_map) for s in run.step_results)),
    )


def _remap_instance(instance: Instance, line_map: LineMap) -> Instance:
    records = []
    for record in instance.step_records:
        if record.line_number is None:
            records.append(record)
            continue
        file_name, local_line = _locate(line_map, record.line_number)
        records.append(
            replace(
                record,
                file_name=file_name,
                line_number=local_line,
                global_line_number=record.line_number,
            )
        )
    _, start_line = _locate(line_map, instance.start_line_number)
    return replace(instance, step_records=records, start_line_number=start_line)


class TriggerTester:
    """Evaluates trigger configurations against log text.

    The engine never raises for malformed recipes, patterns or logs; the
    returned TriggerTestResult explains why a trigger did or did not fire.
    """

    def __init__(self, settings: Settings | None = None):
        """Initialize tester.

        Args:
            settings: Engine settings (caps, default timestamp format)
        """
        self.settings = settings or get_settings()

    def _executor(self, timestamp_format: str | None) -> ChainExecutor:
        extractor = build_extractor(timestamp_format or self.settings.default_timestamp_format)
        return ChainExecutor(extractor, max_resets=self.settings.max_chain_resets)

    @staticmethod
    def _coerce(trigger: TriggerConfig | dict[str, Any] | None) -> TriggerConfig:
        if isinstance(trigger, TriggerConfig):
            return trigger
        return TriggerConfig.model_validate(trigger or {})

    def evaluate(
        self,
        trigger: TriggerConfig | dict[str, Any] | None,
        log_text: str | None,
        timestamp_format: str | None = None,
    ) -> TriggerTestResult:
        """Evaluate a trigger, dispatching on its class.

        Args:
            trigger: Trigger configuration, as a model or a raw mapping
            log_text: Log content, newline separated
            timestamp_format: Timestamp format of the log lines, e.g. 'yyyy-MM-dd HH:mm:ss'

        Returns:
            TriggerTestResult
        """
        config = self._coerce(trigger)
        if config.is_multi:
            return self.evaluate_multi(config, log_text, timestamp_format)
        return self.evaluate_single(config, log_text, timestamp_format)

    def evaluate_single(
        self,
        trigger: TriggerConfig | dict[str, Any] | None,
        log_text: str | None,
        timestamp_format: str | None = None,
    ) -> TriggerTestResult:
        """Evaluate a trigger as one sequential chain.

        Without a limitation the chain runs once from the first line. With a
        limitation duration the chain is run repeatedly and each firing is
        checked against the limit.
        """
        config = self._coerce(trigger)
        recipe = Recipe.from_trigger(config)
        lines = split_lines(log_text)
        executor = self._executor(timestamp_format)
        limitation = config.limitation

        if limitation is None or not limitation.enabled:
            run = executor.run(recipe, lines)
            firings = ()
            if run.all_fired:
                firings = (Firing(chain_run=run, firing_timestamp=run.firing_timestamp),)
            logger.debug("Trigger %r: fired=%s over %d line(s)", config.name, run.all_fired, len(lines))
            return TriggerTestResult(
                steps=run.step_results,
                final_result=FinalResult(triggered=run.all_fired, message=chain_message(recipe, run)),
                firings=firings,
            )

        limiter = RateLimiter(executor, max_firings=self.settings.max_firings)
        outcome = limiter.evaluate_with_limitation(recipe, lines, limitation)
        summary = limiter.summarize(outcome, limitation)
        first_run = outcome.first_run

        logger.debug(
            "Trigger %r: %d firing(s), %d suppressed",
            config.name,
            summary.total_firings,
            summary.suppressed_firings,
        )
        return TriggerTestResult(
            steps=first_run.step_results if first_run is not None else (),
            final_result=FinalResult(
                triggered=summary.allowed_firings > 0,
                message=limitation_message(recipe, outcome, summary),
            ),
            firings=outcome.firings,
            limitation=summary,
        )

    def evaluate_multi(
        self,
        trigger: TriggerConfig | dict[str, Any] | None,
        log_text: str | None,
        timestamp_format: str | None = None,
    ) -> TriggerTestResult:
        """Evaluate a MULTI trigger: one chain instance per captured key."""
        config = self._coerce(trigger)
        recipe = Recipe.from_trigger(config)
        lines = split_lines(log_text)
        coordinator = MultiInstanceCoordinator(
            self._executor(timestamp_format),
            max_instances=self.settings.max_multi_instances,
        )
        run = coordinator.run(recipe, lines)
        summary = run.summary

        if not recipe:
            message = NO_STEPS_MESSAGE
        elif not run.instances:
            message = NO_SPAWN_MESSAGE
        elif summary.fired > 0:
            message = f"{summary.fired} fired, {summary.cancelled} cancelled"
            if summary.incomplete > 0:
                message += f", {summary.incomplete} incomplete"
        else:
            message = f"{summary.total_created} created, none fired"

        return TriggerTestResult(
            steps=(),
            final_result=FinalResult(triggered=summary.fired > 0, message=message),
            is_multi=True,
            multi_instances=run.instances,
            multi_summary=summary,
        )

    def evaluate_files(
        self,
        trigger: TriggerConfig | dict[str, Any] | None,
        files: list[LogFile | dict[str, Any]] | None,
        timestamp_format: str | None = None,
    ) -> TriggerTestResult:
        """Evaluate a trigger over several named files as one log.

        Files are concatenated in order. Every reported line is mapped back to
        its file name and local line number; the position in the combined log
        is kept as ``global_line_number``.
        """
        line_map: LineMap = []
        all_lines: list[str] = []
        for entry in files or []:
            log_file = entry if isinstance(entry, LogFile) else LogFile.model_validate(entry)
            for index, line in enumerate(log_file.content.split("\n")):
                line_map.append((log_file.name, index + 1))
                all_lines.append(line)

        result = self.evaluate(trigger, "\n".join(all_lines), timestamp_format)

        return replace(
            result,
            steps=tuple(_remap_step(s, line_map) for s in result.steps),
            firings=tuple(_remap_firing(f, line_map) for f in result.firings),
            multi_instances=(
                tuple(_remap_instance(i, line_map) for i in result.multi_instances)
                if result.multi_instances is not None
                else None
            ),
        )


# Singleton instance
_trigger_tester: TriggerTester | None = None


def get_trigger_tester() -> TriggerTester:
    """Get the trigger tester instance."""
    global _trigger_tester
    if _trigger_tester is None:
        _trigger_tester = TriggerTester()
    return _trigger_tester
