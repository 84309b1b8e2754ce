"""Recipe validator service.

Checks trigger configurations for problems the engine would otherwise only
report at evaluation time (or silently tolerate): unresolved transitions,
patterns that do not compile, durations that do not parse.
"""

import logging
from typing import Any

from logtrigger.engine.params import malformed_segments
from logtrigger.engine.pattern_compiler import compile_template, referenced_captures
from logtrigger.engine.timestamps import parse_duration
from logtrigger.exceptions import ErrorDetail, RecipeValidationError
from logtrigger.schemas.trigger import (
    RecipeStep,
    RecipeValidationIssue,
    RecipeValidationResult,
    TriggerConfig,
    is_terminal_action,
)

logger = logging.getLogger(__name__)


def validate_duration(duration: str | None) -> tuple[bool, str | None]:
    """Validate a duration string.

    Args:
        duration: Duration string like "10 seconds", "1.5 m", "2 hours"

    Returns:
        Tuple of (is_valid, error_message). An empty duration is valid.
    """
    if not duration:
        return True, None

    parsed = parse_duration(duration)
    if parsed is None:
        return False, (
            f"Invalid duration: {duration}. Use a number followed by seconds, minutes or hours "
            "(e.g. '30 seconds', '1 minutes', '2h')"
        )
    if not parsed:
        return False, "Duration must be positive"

    return True, None


def _raw_times(raw: Any) -> Any:
    if isinstance(raw, dict):
        return raw.get("times")
    return None


class RecipeValidator:
    """Validates trigger configurations."""

    def validate(self, trigger: TriggerConfig | dict[str, Any]) -> RecipeValidationResult:
        """Validate a trigger configuration.

        Args:
            trigger: Trigger configuration, as a model or a raw mapping

        Returns:
            Validation result with errors and warnings
        """
        raw_steps: list[Any] = []
        if isinstance(trigger, dict):
            if isinstance(trigger.get("recipe"), list):
                raw_steps = [s for s in trigger["recipe"] if isinstance(s, dict)]
            trigger = TriggerConfig.model_validate(trigger)

        errors: list[RecipeValidationIssue] = []
        warnings: list[RecipeValidationIssue] = []

        if not trigger.sources:
            warnings.append(RecipeValidationIssue(
                field="source",
                message="No log source configured",
                severity="warning",
            ))

        if not trigger.recipe:
            errors.append(RecipeValidationIssue(
                field="recipe",
                message="Recipe has no steps",
            ))

        # Step names (first occurrence wins at runtime)
        names: set[str] = set()
        for i, step in enumerate(trigger.recipe):
            if not step.name:
                warnings.append(RecipeValidationIssue(
                    field=f"recipe[{i}].name",
                    message=f"Step has no name; it can only be reached as Step_{i + 1}",
                    severity="warning",
                ))
                names.add(f"Step_{i + 1}")
                continue
            if step.name in names:
                errors.append(RecipeValidationIssue(
                    field=f"recipe[{i}].name",
                    message=f"Duplicate step name: {step.name}",
                ))
            names.add(step.name)

        for i, step in enumerate(trigger.recipe):
            raw = raw_steps[i] if i < len(raw_steps) else None
            step_errors, step_warnings = self._validate_step(step, i, names, raw, trigger.is_multi)
            errors.extend(step_errors)
            warnings.extend(step_warnings)

        if trigger.is_multi and trigger.recipe:
            multi_errors = self._validate_multi(trigger.recipe)
            errors.extend(multi_errors)

        if trigger.limitation is not None:
            limit_errors, limit_warnings = self._validate_limitation(trigger)
            errors.extend(limit_errors)
            warnings.extend(limit_warnings)

        if errors:
            logger.debug("Trigger %r failed validation with %d error(s)", trigger.name, len(errors))

        return RecipeValidationResult(
            valid=len(errors) == 0,
            errors=errors,
            warnings=warnings,
        )

    def ensure_valid(self, trigger: TriggerConfig | dict[str, Any]) -> RecipeValidationResult:
        """Validate and raise RecipeValidationError on errors."""
        result = self.validate(trigger)
        if not result.valid:
            raise RecipeValidationError(
                details=[
                    ErrorDetail(field=issue.field, message=issue.message, code="INVALID_RECIPE")
                    for issue in result.errors
                ]
            )
        return result

    def _validate_step(
        self,
        step: RecipeStep,
        index: int,
        names: set[str],
        raw: Any,
        is_multi: bool,
    ) -> tuple[list[RecipeValidationIssue], list[RecipeValidationIssue]]:
        errors: list[RecipeValidationIssue] = []
        warnings: list[RecipeValidationIssue] = []
        prefix = f"recipe[{index}]"

        if not step.patterns:
            errors.append(RecipeValidationIssue(
                field=f"{prefix}.trigger",
                message="Step has no trigger patterns",
            ))

        for j, item in enumerate(step.trigger):
            if not item.syntax:
                continue
            compiled = compile_template(item.syntax)
            if not compiled.ok:
                errors.append(RecipeValidationIssue(
                    field=f"{prefix}.trigger[{j}].syntax",
                    message=f"Pattern does not compile: {compiled.error}",
                ))
            for segment in malformed_segments(item.params):
                warnings.append(RecipeValidationIssue(
                    field=f"{prefix}.trigger[{j}].params",
                    message=f"Condition is ignored: {segment}",
                    severity="warning",
                ))
            if referenced_captures(item.syntax) and not is_multi:
                warnings.append(RecipeValidationIssue(
                    field=f"{prefix}.trigger[{j}].syntax",
                    message="@<<name>>@ references are only substituted in MULTI triggers",
                    severity="warning",
                ))

        valid, err = validate_duration(step.duration)
        if not valid:
            errors.append(RecipeValidationIssue(
                field=f"{prefix}.duration",
                message=err or "Invalid duration",
            ))

        times = _raw_times(raw)
        if times is not None:
            try:
                times_ok = int(str(times).strip()) >= 1
            except ValueError:
                times_ok = False
            if not times_ok:
                warnings.append(RecipeValidationIssue(
                    field=f"{prefix}.times",
                    message=f"times must be a positive integer (got {times!r}); 1 is used",
                    severity="warning",
                ))

        if step.next and not is_terminal_action(step.next) and step.next not in names:
            errors.append(RecipeValidationIssue(
                field=f"{prefix}.next",
                message=f"Next step not found: {step.next}",
            ))

        if step.next in ("@script", "@Script") and not (step.script and step.script.name):
            warnings.append(RecipeValidationIssue(
                field=f"{prefix}.script.name",
                message="@script next action without a script name",
                severity="warning",
            ))

        if step.is_delay and not step.duration:
            warnings.append(RecipeValidationIssue(
                field=f"{prefix}.duration",
                message="Delay step without duration cancels on any match",
                severity="warning",
            ))

        return errors, warnings

    def _validate_multi(self, recipe: list[RecipeStep]) -> list[RecipeValidationIssue]:
        errors: list[RecipeValidationIssue] = []

        captured: set[str] = set()
        for item in recipe[0].trigger:
            compiled = compile_template(item.syntax)
            captured.update(compiled.group_names)

        if not captured:
            errors.append(RecipeValidationIssue(
                field="recipe[0].trigger",
                message="MULTI triggers need a named capture (<<name>>) in step 1",
            ))

        for i, step in enumerate(recipe):
            for j, item in enumerate(step.trigger):
                for name in referenced_captures(item.syntax):
                    if name not in captured:
                        errors.append(RecipeValidationIssue(
                            field=f"recipe[{i}].trigger[{j}].syntax",
                            message=f"@<<{name}>>@ is not captured by step 1",
                        ))

        return errors

    def _validate_limitation(
        self, trigger: TriggerConfig
    ) -> tuple[list[RecipeValidationIssue], list[RecipeValidationIssue]]:
        errors: list[RecipeValidationIssue] = []
        warnings: list[RecipeValidationIssue] = []
        limitation = trigger.limitation

        valid, err = validate_duration(limitation.duration)
        if not valid:
            errors.append(RecipeValidationIssue(
                field="limitation.duration",
                message=err or "Invalid duration",
            ))

        if limitation.times is not None and limitation.times < 1:
            errors.append(RecipeValidationIssue(
                field="limitation.times",
                message="limitation.times must be at least 1",
            ))

        if limitation.times is not None and not limitation.duration:
            warnings.append(RecipeValidationIssue(
                field="limitation.duration",
                message="limitation.times has no effect without a duration",
                severity="warning",
            ))

        return errors, warnings


# Singleton instance
_recipe_validator: RecipeValidator | None = None


def get_recipe_validator() -> RecipeValidator:
    """Get the recipe validator instance."""
    global _recipe_validator
    if _recipe_validator is None:
        _recipe_validator = RecipeValidator()
    return _recipe_validator
