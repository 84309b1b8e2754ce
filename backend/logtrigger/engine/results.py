"""Result objects produced by the trigger engine.

PATTERN: Data Transfer Object (DTO)
Every outcome is plain data: a malformed pattern, a failed condition or an
unresolvable transition shows up here instead of as an exception, so a
caller can explain why a chain did or did not fire without re-running it.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any

from pydantic import TypeAdapter

from logtrigger.engine.params import ConditionOutcome, ParamsOutcome
from logtrigger.schemas.trigger import StepType


@dataclass(frozen=True)
class Match:
    """A log line that satisfied a trigger item."""

    line_number: int
    raw_line: str
    pattern: str
    timestamp: datetime | None = None
    captured_groups: dict[str, str | None] = field(default_factory=dict)
    params_outcome: ParamsOutcome | None = None
    file_name: str | None = None
    global_line_number: int | None = None


@dataclass(frozen=True)
class RejectedMatch(Match):
    """A line whose pattern matched but whose conditions failed."""

    reason: str = "params_failed"

    @property
    def failed_conditions(self) -> list[ConditionOutcome]:
        if self.params_outcome is None:
            return []
        return self.params_outcome.failed_conditions


@dataclass(frozen=True)
class DurationCheck:
    """Outcome of a step's time-window check."""

    passed: bool
    elapsed: timedelta | None = None
    limit: timedelta | None = None
    message: str | None = None


@dataclass(frozen=True)
class StepResult:
    """Immutable outcome of one step within one chain run.

    KEYWORD steps: fired=True means the step fired.
    DELAY steps: fired=True with cancelled=True means the cancel pattern
    matched inside the window; fired=False with timed_out=True is the normal
    path into ``next``.
    """

    name: str
    type: StepType
    patterns: tuple[str, ...]
    required_times: int
    duration: str | None
    fired: bool
    cancelled: bool = False
    timed_out: bool = False
    reset_chain: bool = False
    matches: tuple[Match, ...] = field(default_factory=tuple)
    rejected_matches: tuple[RejectedMatch, ...] = field(default_factory=tuple)
    regex_errors: tuple[str, ...] = field(default_factory=tuple)
    tested_line_count: int = 0
    next_action: str = ""
    duration_check: DurationCheck | None = None

    @property
    def match_count(self) -> int:
        return len(self.matches)

    @property
    def last_timestamp(self) -> datetime | None:
        """Timestamp of the last buffered match."""
        if not self.matches:
            return None
        return self.matches[-1].timestamp


@dataclass(frozen=True)
class ChainRun:
    """One traversal of a recipe from a starting line."""

    step_results: tuple[StepResult, ...]
    all_fired: bool
    resume_line_offset: int
    firing_timestamp: datetime | None = None

    @property
    def last_step(self) -> StepResult | None:
        return self.step_results[-1] if self.step_results else None


@dataclass(frozen=True)
class Firing:
    """A successful chain run, possibly suppressed by the rate limitation."""

    chain_run: ChainRun
    suppressed: bool = False
    firing_timestamp: datetime | None = None

    @property
    def fired(self) -> bool:
        return True

    @property
    def steps(self) -> tuple[StepResult, ...]:
        return self.chain_run.step_results


@dataclass(frozen=True)
class LimitationSummary:
    """Firing counts under a rate limitation."""

    times: int | None
    duration: str | None
    duration_label: str | None
    total_firings: int
    allowed_firings: int
    suppressed_firings: int


class InstanceStatus(str, Enum):
    """Lifecycle status of a MULTI instance."""

    ACTIVE = "active"
    FIRED = "fired"
    CANCELLED = "cancelled"
    INCOMPLETE = "incomplete"


@dataclass(frozen=True)
class InstanceStepRecord:
    """What happened to one MULTI instance at one step."""

    name: str
    type: StepType
    outcome: str  # matched, cancelled, timed_out
    line_number: int | None = None
    raw_line: str | None = None
    timestamp: datetime | None = None
    message: str = ""
    file_name: str | None = None
    global_line_number: int | None = None


@dataclass
class Instance:
    """One key-correlated execution of a recipe in MULTI mode.

    Owned and mutated only by the coordinator's forward pass.
    """

    id: int
    captured_groups: dict[str, str | None]
    captured_key: str
    start_line_number: int
    current_step_index: int = 0
    status: InstanceStatus = InstanceStatus.ACTIVE
    prev_step_timestamp: datetime | None = None
    step_records: list[InstanceStepRecord] = field(default_factory=list)
    firing_timestamp: datetime | None = None
    step_entered_line: int = 0

    @property
    def active(self) -> bool:
        return self.status == InstanceStatus.ACTIVE


@dataclass(frozen=True)
class MultiSummary:
    """Tally of a MULTI run. Still-active instances count as incomplete."""

    total_created: int = 0
    fired: int = 0
    cancelled: int = 0
    incomplete: int = 0


@dataclass(frozen=True)
class FinalResult:
    """Overall verdict of a trigger evaluation."""

    triggered: bool
    message: str


@dataclass(frozen=True)
class TriggerTestResult:
    """Uniform result of the public evaluation entry points."""

    steps: tuple[StepResult, ...]
    final_result: FinalResult
    firings: tuple[Firing, ...] = field(default_factory=tuple)
    limitation: LimitationSummary | None = None
    is_multi: bool = False
    multi_instances: tuple[Instance, ...] | None = None
    multi_summary: MultiSummary | None = None

    @property
    def triggered(self) -> bool:
        return self.final_result.triggered

    def to_dict(self) -> dict[str, Any]:
        """JSON-compatible representation."""
        return _RESULT_ADAPTER.dump_python(self, mode="json")

    def to_json(self, indent: int | None = 2) -> str:
        return _RESULT_ADAPTER.dump_json(self, indent=indent).decode()


_RESULT_ADAPTER = TypeAdapter(TriggerTestResult)
