"""Matching a log line against a step's trigger items."""

from dataclasses import dataclass, field
from datetime import datetime

from logtrigger.engine.params import ParamsOutcome, evaluate_params, parse_conditions
from logtrigger.engine.pattern_compiler import CompiledPattern, compile_template
from logtrigger.engine.results import Match, RejectedMatch
from logtrigger.schemas.trigger import TriggerItem


@dataclass
class LineOutcome:
    """Result of testing one line against all trigger items of a step."""

    match: Match | None = None
    rejected: list[RejectedMatch] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


class TriggerItemMatcher:
    """Tests log lines against an ordered list of trigger items.

    The first item whose pattern and conditions both hold wins. Items whose
    pattern matched but whose conditions failed are reported as rejected
    matches; templates that fail to compile are reported as errors and
    skipped.
    """

    def __init__(
        self,
        items: list[TriggerItem],
        captures: dict[str, str | None] | None = None,
    ):
        """Compile the step's items.

        Args:
            items: Trigger items of the step, in priority order
            captures: MULTI instance captures substituted into ``@<<name>>@``
        """
        self._items: list[tuple[TriggerItem, CompiledPattern, list | None]] = []
        for item in items:
            if not item.syntax:
                continue
            self._items.append(
                (item, compile_template(item.syntax, captures), parse_conditions(item.params))
            )

    def match_line(
        self,
        line_number: int,
        line: str,
        timestamp: datetime | None,
        search: bool = False,
    ) -> LineOutcome:
        """Test a line.

        Args:
            line_number: 1-based line number
            line: Raw line text
            timestamp: Parsed line timestamp, if any
            search: Match anywhere in the line instead of the whole line
        """
        outcome = LineOutcome()
        for item, compiled, conditions in self._items:
            if not compiled.ok:
                outcome.errors.append(f"{item.syntax}: {compiled.error}")
                continue

            found = compiled.search(line) if search else compiled.fullmatch(line)
            if not found:
                continue

            groups = found.groupdict()
            params_outcome: ParamsOutcome | None = None
            if conditions:
                params_outcome = evaluate_params(conditions, groups)
                if not params_outcome.passed:
                    outcome.rejected.append(
                        RejectedMatch(
                            line_number=line_number,
                            raw_line=line,
                            pattern=item.syntax,
                            timestamp=timestamp,
                            captured_groups=groups,
                            params_outcome=params_outcome,
                        )
                    )
                    continue

            outcome.match = Match(
                line_number=line_number,
                raw_line=line,
                pattern=item.syntax,
                timestamp=timestamp,
                captured_groups=groups,
                params_outcome=params_outcome,
            )
            break
        return outcome
