"""Parameter conditions evaluated against captured groups.

Condition strings look like::

    ParamComparisionMatcher2@500,GTE,code;3.5,LT,latency

Each ``value,OP,name`` segment compares the numeric value captured in group
``name`` against ``value``. Segments that do not parse are dropped.
"""

import math
import re
from dataclasses import dataclass, field
from enum import Enum

PARAMS_PATTERN = re.compile(r"^ParamComparisionMatcher(\d+)@(.+)$")
CONDITION_PATTERN = re.compile(r"^([\d.]+),(EQ|NEQ|GT|GTE|LT|LTE),(\w+)$", re.IGNORECASE)


class ComparisonOp(str, Enum):
    """Numeric comparison operators."""

    EQ = "eq"
    NEQ = "neq"
    GT = "gt"
    GTE = "gte"
    LT = "lt"
    LTE = "lte"


OPERATIONS = {
    ComparisonOp.EQ: lambda x, y: x == y,
    ComparisonOp.NEQ: lambda x, y: x != y,
    ComparisonOp.GT: lambda x, y: x > y,
    ComparisonOp.GTE: lambda x, y: x >= y,
    ComparisonOp.LT: lambda x, y: x < y,
    ComparisonOp.LTE: lambda x, y: x <= y,
}

OPERATOR_SYMBOLS = {
    ComparisonOp.EQ: "==",
    ComparisonOp.NEQ: "!=",
    ComparisonOp.GT: ">",
    ComparisonOp.GTE: ">=",
    ComparisonOp.LT: "<",
    ComparisonOp.LTE: "<=",
}


@dataclass(frozen=True)
class Condition:
    """A single numeric comparison against a captured group."""

    compare_value: float
    op: ComparisonOp
    var_name: str

    def __str__(self) -> str:
        return f"{self.var_name} {OPERATOR_SYMBOLS[self.op]} {self.compare_value:g}"


@dataclass(frozen=True)
class ConditionOutcome:
    """Evaluation detail of one condition."""

    var_name: str
    extracted_value: float | None
    op: ComparisonOp
    compare_value: float
    passed: bool


@dataclass(frozen=True)
class ParamsOutcome:
    """Evaluation of all conditions attached to a trigger item."""

    conditions: tuple[Condition, ...]
    passed: bool
    details: tuple[ConditionOutcome, ...] = field(default_factory=tuple)

    @property
    def failed_conditions(self) -> list[ConditionOutcome]:
        return [d for d in self.details if not d.passed]


def parse_conditions(params: str | None) -> list[Condition] | None:
    """Parse a condition string.

    Args:
        params: ``ParamComparisionMatcher<N>@cond;cond;...`` string

    Returns:
        Parsed conditions, or None when the string is empty or does not use
        the ParamComparisionMatcher prefix
    """
    if not params:
        return None

    match = PARAMS_PATTERN.match(params.strip())
    if not match:
        return None

    conditions = []
    for segment in match.group(2).split(";"):
        parsed = CONDITION_PATTERN.match(segment.strip())
        if not parsed:
            continue
        try:
            compare_value = float(parsed.group(1))
        except ValueError:
            continue
        conditions.append(
            Condition(
                compare_value=compare_value,
                op=ComparisonOp(parsed.group(2).lower()),
                var_name=parsed.group(3),
            )
        )
    return conditions


def malformed_segments(params: str | None) -> list[str]:
    """Segments of a condition string that would be silently dropped."""
    if not params:
        return []
    match = PARAMS_PATTERN.match(params.strip())
    if not match:
        return [params]
    return [
        segment
        for segment in match.group(2).split(";")
        if not CONDITION_PATTERN.match(segment.strip())
    ]


def _numeric(value: str | None) -> float | None:
    """Leading-number parse of a captured value; None if not numeric."""
    if value is None:
        return None
    match = re.match(r"^\s*[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?", str(value))
    if not match:
        return None
    number = float(match.group(0))
    return None if math.isnan(number) else number


def check_condition(condition: Condition, groups: dict[str, str | None] | None) -> bool:
    """Check one condition. Absent or non-numeric variables fail."""
    value = _numeric((groups or {}).get(condition.var_name))
    if value is None:
        return False
    return OPERATIONS[condition.op](value, condition.compare_value)


def evaluate_conditions(
    conditions: list[Condition] | None,
    groups: dict[str, str | None] | None,
) -> bool:
    """Return True if every condition holds. No conditions always holds."""
    if not conditions:
        return True
    return all(check_condition(c, groups) for c in conditions)


def evaluate_params(
    conditions: list[Condition],
    groups: dict[str, str | None] | None,
) -> ParamsOutcome:
    """Evaluate conditions and keep per-condition detail for diagnostics."""
    details = []
    for condition in conditions:
        details.append(
            ConditionOutcome(
                var_name=condition.var_name,
                extracted_value=_numeric((groups or {}).get(condition.var_name)),
                op=condition.op,
                compare_value=condition.compare_value,
                passed=check_condition(condition, groups),
            )
        )
    return ParamsOutcome(
        conditions=tuple(conditions),
        passed=all(d.passed for d in details),
        details=tuple(details),
    )
