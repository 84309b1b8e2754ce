"""Plain-English descriptions of trigger configurations."""

from typing import Any

from logtrigger.engine.params import OPERATOR_SYMBOLS, parse_conditions
from logtrigger.engine.timestamps import format_duration
from logtrigger.schemas.trigger import RecipeStep, TriggerConfig, TriggerItem

TYPE_LABELS = {
    "regex": "keyword",
    "delay": "delay (cancel)",
}

MAX_LISTED_PATTERNS = 3


def describe_conditions(item: TriggerItem) -> str:
    """Describe an item's parameter conditions, e.g. '[if code >= 500]'."""
    conditions = parse_conditions(item.params)
    if not conditions:
        return ""
    parts = [f"{c.var_name} {OPERATOR_SYMBOLS[c.op]} {c.compare_value:g}" for c in conditions]
    return f"[if {', '.join(parts)}]"


def describe_patterns(step: RecipeStep) -> str:
    described = []
    for item in step.trigger:
        text = f'"{item.syntax}"'
        conditions = describe_conditions(item)
        described.append(f"{text} {conditions}" if conditions else text)

    if len(described) <= MAX_LISTED_PATTERNS:
        return ", ".join(described)
    shown = MAX_LISTED_PATTERNS - 1
    return ", ".join(described[:shown]) + f" and {len(described) - shown} more"


def describe_next(step: RecipeStep) -> str:
    """Describe what a step does when it completes."""
    next_action = step.next

    if next_action in ("@script", "@Script"):
        if not (step.script and step.script.name):
            return "run script scenario"
        text = f"run {step.script.name}"
        details = []
        if step.script.arg:
            details.append(f"args: {step.script.arg}")
        if step.script.timeout:
            details.append(f"timeout: {format_duration(step.script.timeout)}")
        if details:
            text += f" ({', '.join(details)})"
        return text

    if next_action == "@recovery":
        return "run scenario"
    if next_action == "@notify":
        return "send mail"
    if next_action == "@popup":
        no_email = step.detail.get("no-email")
        return f"show popup (no-email: {no_email})" if no_email else "show popup"
    if next_action == "@suspend":
        if not step.suspend:
            return "suspend all triggers"
        targets = [
            f"{t.name} ({format_duration(t.duration)})" if t.duration else t.name
            for t in step.suspend
        ]
        return f"suspend triggers: {', '.join(targets)}"
    if next_action == "@resume":
        if not step.resume:
            return "resume all triggers"
        return f"resume triggers: {', '.join(t.name for t in step.resume)}"
    if next_action:
        return f"go to {next_action}"
    return "end chain"


def describe_step(step: RecipeStep, index: int) -> str:
    type_label = TYPE_LABELS.get(step.type.value, step.type.value)
    duration = format_duration(step.duration)
    requirement = f"{step.times} match(es)"
    if duration:
        requirement += f" within {duration}"

    if step.is_delay:
        if step.next:
            outcome = f"reset chain, otherwise {describe_next(step)}"
        else:
            outcome = "end chain"
        return f"  Step {index + 1}: {type_label} {describe_patterns(step)} on {requirement} -> {outcome}"

    return f"  Step {index + 1}: {type_label} {describe_patterns(step)} on {requirement} -> {describe_next(step)}"


def describe_trigger(trigger: TriggerConfig | dict[str, Any]) -> str:
    """Describe a trigger configuration in plain English.

    Args:
        trigger: Trigger configuration, as a model or a raw mapping

    Returns:
        Multi-line description: sources, MULTI marker, one line per step and
        the limitation
    """
    if not isinstance(trigger, TriggerConfig):
        trigger = TriggerConfig.model_validate(trigger or {})

    lines = []
    sources = trigger.sources
    if len(sources) > 1:
        lines.append(f"Watches {len(sources)} log sources: {', '.join(sources)}")
    else:
        lines.append(f'Watches log source "{trigger.source}".')

    if trigger.is_multi:
        lines.append("  [MULTI] one independent chain per value captured by step 1")

    for index, step in enumerate(trigger.recipe):
        lines.append(describe_step(step, index))

    if trigger.limitation is not None:
        times = trigger.limitation.times
        duration = format_duration(trigger.limitation.duration)
        if times is None:
            lines.append("  Limit: no cap on firings")
        elif duration:
            lines.append(f"  Limit: fires at most {times} time(s) within {duration}")
        else:
            lines.append(f"  Limit: fires at most {times} time(s)")

    return "\n".join(lines)
