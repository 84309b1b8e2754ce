"""Multi-instance coordinator for MULTI triggers.

Each line that matches step 1 with a named capture spawns an instance keyed
by its first captured value. Instances advance independently through the
recipe in one forward pass over the log, with their own captures substituted
into ``@<<name>>@`` references of later steps.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime

from logtrigger.config import get_settings
from logtrigger.engine.chain_executor import ChainExecutor, StepScanner, StepSignal, timeout_moment
from logtrigger.engine.params import Condition, evaluate_conditions, parse_conditions
from logtrigger.engine.pattern_compiler import CompiledPattern, compile_template
from logtrigger.engine.recipe import Recipe
from logtrigger.engine.results import Instance, InstanceStatus, InstanceStepRecord, MultiSummary
from logtrigger.schemas.trigger import RecipeStep, is_terminal_action

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MultiRun:
    """All instances of one MULTI pass and their tally."""

    instances: tuple[Instance, ...] = field(default_factory=tuple)
    summary: MultiSummary = field(default_factory=MultiSummary)


def summarize_instances(instances: list[Instance]) -> MultiSummary:
    statuses = [i.status for i in instances]
    return MultiSummary(
        total_created=len(instances),
        fired=statuses.count(InstanceStatus.FIRED),
        cancelled=statuses.count(InstanceStatus.CANCELLED),
        incomplete=statuses.count(InstanceStatus.INCOMPLETE) + statuses.count(InstanceStatus.ACTIVE),
    )


class MultiInstanceCoordinator:
    """Owns the instance arena for one pass over a log."""

    def __init__(self, executor: ChainExecutor, max_instances: int | None = None):
        """Initialize coordinator.

        Args:
            executor: Executor providing timestamps and step scanners
            max_instances: Cap on concurrently active instances (defaults to settings)
        """
        self.executor = executor
        self.max_instances = max_instances or get_settings().max_multi_instances

    def run(self, recipe: Recipe, lines: list[str]) -> MultiRun:
        """Run all instances over the log.

        Args:
            recipe: MULTI recipe; step 1 is the spawn step
            lines: All log lines

        Returns:
            MultiRun with instances in creation order
        """
        if not recipe:
            return MultiRun()

        instances: list[Instance] = []
        scanners: dict[int, StepScanner] = {}
        spawners = self._spawn_patterns(recipe.steps[0])

        for line_index, line in enumerate(lines):
            line_number = line_index + 1
            timestamp = self.executor.timestamp_of(line)

            for instance in instances:
                if instance.active:
                    self._advance(recipe, instance, scanners, line_number, line, timestamp)

            self._spawn(recipe, spawners, instances, scanners, line_number, line, timestamp)

        for instance in instances:
            if instance.active:
                self._finish(recipe, instance, len(lines))

        summary = summarize_instances(instances)
        logger.debug(
            "MULTI pass over %d line(s): %d created, %d fired, %d cancelled, %d incomplete",
            len(lines),
            summary.total_created,
            summary.fired,
            summary.cancelled,
            summary.incomplete,
        )
        return MultiRun(instances=tuple(instances), summary=summary)

    @staticmethod
    def _spawn_patterns(step: RecipeStep) -> list[tuple[CompiledPattern, list[Condition] | None]]:
        spawners = []
        for item in step.trigger:
            if not item.syntax:
                continue
            compiled = compile_template(item.syntax)
            if not compiled.ok:
                logger.debug("Step 1 pattern %r does not compile: %s", item.syntax, compiled.error)
                continue
            spawners.append((compiled, parse_conditions(item.params)))
        return spawners

    def _active_count(self, instances: list[Instance]) -> int:
        return sum(1 for i in instances if i.active)

    def _spawn(
        self,
        recipe: Recipe,
        spawners: list[tuple[CompiledPattern, list[Condition] | None]],
        instances: list[Instance],
        scanners: dict[int, StepScanner],
        line_number: int,
        line: str,
        timestamp: datetime | None,
    ) -> None:
        step = recipe.steps[0]
        for compiled, conditions in spawners:
            if self._active_count(instances) >= self.max_instances:
                return

            found = compiled.search(line)
            if not found:
                continue
            groups = found.groupdict()
            if not groups or not evaluate_conditions(conditions, groups):
                continue

            key = next(iter(groups.values())) or ""
            if any(i.active and i.captured_key == key for i in instances):
                continue

            instance = Instance(
                id=len(instances) + 1,
                captured_groups=groups,
                captured_key=key,
                start_line_number=line_number,
                prev_step_timestamp=timestamp,
                step_entered_line=line_number,
            )
            instance.step_records.append(
                InstanceStepRecord(
                    name=recipe.names[0],
                    type=step.type,
                    outcome="matched",
                    line_number=line_number,
                    raw_line=line,
                    timestamp=timestamp,
                    message="Instance created",
                )
            )
            instances.append(instance)
            logger.debug("Instance %d spawned for key %r at line %d", instance.id, key, line_number)

            self._goto(recipe, instance, scanners, step.next, timestamp, line_number)

    def _advance(
        self,
        recipe: Recipe,
        instance: Instance,
        scanners: dict[int, StepScanner],
        line_number: int,
        line: str,
        timestamp: datetime | None,
    ) -> None:
        # A timeout leaves the line unconsumed; the next step sees it too
        for _ in range(len(recipe) + 1):
            scanner = scanners[instance.id]
            signal = scanner.feed(line_number, line, timestamp)
            if signal is None:
                return

            step = scanner.step
            if signal == StepSignal.CANCELLED:
                self._record(
                    instance,
                    scanner,
                    "cancelled",
                    line_number,
                    line,
                    timestamp,
                    "Pattern matched -> cancelled",
                )
                instance.status = InstanceStatus.CANCELLED
                scanners.pop(instance.id, None)
                logger.debug("Instance %d cancelled at line %d", instance.id, line_number)
                return

            if signal == StepSignal.FIRED:
                match = scanner.matches[-1]
                self._record(instance, scanner, "matched", line_number, line, match.timestamp)
                if match.timestamp is not None:
                    instance.prev_step_timestamp = match.timestamp
                self._goto(recipe, instance, scanners, step.next, match.timestamp, line_number)
                return

            self._record(
                instance,
                scanner,
                "timed_out",
                None,
                None,
                None,
                f"Timed out ({scanner.duration_label} exceeded)",
            )
            moved = self._goto(
                recipe,
                instance,
                scanners,
                step.next,
                timeout_moment(instance.prev_step_timestamp, step),
                line_number - 1,
            )
            if not moved:
                return

        logger.warning("Instance %d stalled in delay timeouts at line %d", instance.id, line_number)

    def _goto(
        self,
        recipe: Recipe,
        instance: Instance,
        scanners: dict[int, StepScanner],
        next_action: str,
        firing_timestamp: datetime | None,
        entered_line: int,
    ) -> bool:
        """Apply a step's ``next``; returns True if the instance moved to a step."""
        if not next_action or is_terminal_action(next_action):
            instance.status = InstanceStatus.FIRED
            instance.firing_timestamp = firing_timestamp
            scanners.pop(instance.id, None)
            logger.debug("Instance %d fired (%s)", instance.id, next_action or "end")
            return False

        target = recipe.resolve(next_action)
        if target is None:
            instance.status = InstanceStatus.INCOMPLETE
            scanners.pop(instance.id, None)
            logger.debug("Instance %d: unresolved next %r", instance.id, next_action)
            return False

        instance.current_step_index = target
        instance.step_entered_line = entered_line
        scanners[instance.id] = self.executor.scanner_for(
            recipe, target, instance.prev_step_timestamp, instance.captured_groups
        )
        return True

    def _finish(self, recipe: Recipe, instance: Instance, line_count: int) -> None:
        step = recipe.steps[instance.current_step_index]
        if not step.is_delay:
            instance.status = InstanceStatus.INCOMPLETE
            return

        # Spawned on the final line: no later line could let the delay elapse
        if instance.start_line_number >= line_count:
            return

        instance.step_records.append(
            InstanceStepRecord(
                name=recipe.names[instance.current_step_index],
                type=step.type,
                outcome="timed_out",
                message="End of log -> timeout",
            )
        )
        instance.status = InstanceStatus.FIRED
        instance.firing_timestamp = timeout_moment(instance.prev_step_timestamp, step)
        logger.debug("Instance %d fired at end of log (%s)", instance.id, step.next or "end")

    @staticmethod
    def _record(
        instance: Instance,
        scanner: StepScanner,
        outcome: str,
        line_number: int | None,
        line: str | None,
        timestamp: datetime | None,
        message: str = "",
    ) -> None:
        instance.step_records.append(
            InstanceStepRecord(
                name=scanner.name,
                type=scanner.step.type,
                outcome=outcome,
                line_number=line_number,
                raw_line=line,
                timestamp=timestamp,
                message=message,
            )
        )
