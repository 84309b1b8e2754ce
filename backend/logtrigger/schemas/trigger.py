"""Schemas for trigger configurations and recipe validation."""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

TERMINAL_ACTIONS = frozenset(
    {"@script", "@Script", "@recovery", "@notify", "@popup", "@suspend", "@resume"}
)


class StepType(str, Enum):
    """Recipe step types."""

    KEYWORD = "regex"
    DELAY = "delay"

    @classmethod
    def _missing_(cls, value: object) -> "StepType":
        if isinstance(value, str) and value.strip().lower() == "delay":
            return cls.DELAY
        # "keyword", "regex", blanks and unknown types all scan as keywords
        return cls.KEYWORD


class TriggerClass(str, Enum):
    """Trigger evaluation classes."""

    SINGLE = "none"
    MULTI = "MULTI"

    @classmethod
    def _missing_(cls, value: object) -> "TriggerClass":
        if isinstance(value, str) and value.strip().upper() == "MULTI":
            return cls.MULTI
        return cls.SINGLE


def is_terminal_action(next_action: str | None) -> bool:
    """Return True if a step's next value ends the chain with an action."""
    return next_action in TERMINAL_ACTIONS


# =============================================================================
# Recipe Schemas
# =============================================================================


class TriggerItem(BaseModel):
    """A single pattern template with optional parameter conditions."""

    model_config = ConfigDict(extra="ignore")

    syntax: str = Field("", description="Pattern template, e.g. '.*ERROR (<<code>>\\d+)'")
    params: str | None = Field(
        None, description="Condition string, e.g. 'ParamComparisionMatcher1@500,GTE,code'"
    )

    @field_validator("syntax", mode="before")
    @classmethod
    def coerce_syntax(cls, v: Any) -> str:
        return "" if v is None else str(v)

    @field_validator("params", mode="before")
    @classmethod
    def coerce_params(cls, v: Any) -> str | None:
        return None if v is None else str(v)


def _optional_text(v: Any) -> str | None:
    if v is None:
        return None
    text = str(v).strip()
    return text or None


class ScriptConfig(BaseModel):
    """Script attached to an @script next action."""

    model_config = ConfigDict(extra="ignore")

    name: str = ""
    arg: str = ""
    timeout: str | None = None

    @field_validator("name", "arg", mode="before")
    @classmethod
    def coerce_text(cls, v: Any) -> str:
        return "" if v is None else str(v)

    @field_validator("timeout", mode="before")
    @classmethod
    def coerce_timeout(cls, v: Any) -> str | None:
        return _optional_text(v)


class SuspendTarget(BaseModel):
    """A trigger suspended or resumed by @suspend / @resume."""

    model_config = ConfigDict(extra="ignore")

    name: str = ""
    duration: str | None = None

    @field_validator("name", mode="before")
    @classmethod
    def coerce_name(cls, v: Any) -> str:
        return "" if v is None else str(v)

    @field_validator("duration", mode="before")
    @classmethod
    def coerce_duration(cls, v: Any) -> str | None:
        return _optional_text(v)


class RecipeStep(BaseModel):
    """One stage of a trigger recipe."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    name: str = Field("", description="Unique step name referenced by other steps' next")
    type: StepType = Field(StepType.KEYWORD, description="regex (keyword) or delay")
    trigger: list[TriggerItem] = Field(default_factory=list, description="Pattern list")
    times: int = Field(1, description="Matches required for the step to fire")
    duration: str | None = Field(None, description="Time window, e.g. '10 seconds'")
    next: str = Field("", description="Step name, terminal action tag, or empty")
    script: ScriptConfig | None = None
    detail: dict[str, Any] = Field(default_factory=dict)
    suspend: list[SuspendTarget] = Field(default_factory=list)
    resume: list[SuspendTarget] = Field(default_factory=list)

    @field_validator("name", "next", mode="before")
    @classmethod
    def coerce_text(cls, v: Any) -> str:
        return "" if v is None else str(v).strip()

    @field_validator("type", mode="before")
    @classmethod
    def coerce_type(cls, v: Any) -> StepType:
        return StepType(v) if isinstance(v, str) else StepType.KEYWORD

    @field_validator("trigger", mode="before")
    @classmethod
    def coerce_trigger_items(cls, v: Any) -> list[Any]:
        if not isinstance(v, list):
            return []
        items = []
        for item in v:
            if isinstance(item, str):
                items.append({"syntax": item})
            elif isinstance(item, dict):
                items.append(item)
            elif isinstance(item, TriggerItem):
                items.append(item)
        return items

    @field_validator("times", mode="before")
    @classmethod
    def coerce_times(cls, v: Any) -> int:
        try:
            times = int(str(v).strip())
        except (TypeError, ValueError):
            return 1
        return times if times >= 1 else 1

    @field_validator("duration", mode="before")
    @classmethod
    def coerce_duration(cls, v: Any) -> str | None:
        if v is None:
            return None
        text = str(v).strip()
        return text or None

    @field_validator("script", mode="before")
    @classmethod
    def coerce_script(cls, v: Any) -> Any:
        return v if isinstance(v, dict | ScriptConfig) else None

    @field_validator("detail", mode="before")
    @classmethod
    def coerce_detail(cls, v: Any) -> dict[str, Any]:
        return v if isinstance(v, dict) else {}

    @field_validator("suspend", "resume", mode="before")
    @classmethod
    def coerce_targets(cls, v: Any) -> list[Any]:
        return [t for t in v if isinstance(t, dict | SuspendTarget)] if isinstance(v, list) else []

    @property
    def is_delay(self) -> bool:
        return self.type == StepType.DELAY

    @property
    def patterns(self) -> list[str]:
        """Non-empty pattern templates of this step."""
        return [item.syntax for item in self.trigger if item.syntax]


class Limitation(BaseModel):
    """Rate limitation applied to chain firings."""

    model_config = ConfigDict(extra="ignore")

    times: int | None = Field(None, description="Maximum allowed firings per window")
    duration: str | None = Field(None, description="Window length, e.g. '1 minutes'")

    @field_validator("times", mode="before")
    @classmethod
    def coerce_times(cls, v: Any) -> int | None:
        if v is None or v == "":
            return None
        try:
            return int(str(v).strip())
        except (TypeError, ValueError):
            return None

    @field_validator("duration", mode="before")
    @classmethod
    def coerce_duration(cls, v: Any) -> str | None:
        if v is None:
            return None
        text = str(v).strip()
        return text or None

    @property
    def enabled(self) -> bool:
        return bool(self.duration)


class TriggerConfig(BaseModel):
    """Complete trigger configuration."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    name: str = ""
    source: str = Field("", description="Comma-separated log source names")
    trigger_class: TriggerClass = Field(TriggerClass.SINGLE, alias="class")
    recipe: list[RecipeStep] = Field(default_factory=list)
    limitation: Limitation | None = None

    @field_validator("name", "source", mode="before")
    @classmethod
    def coerce_text(cls, v: Any) -> str:
        return "" if v is None else str(v)

    @field_validator("trigger_class", mode="before")
    @classmethod
    def coerce_class(cls, v: Any) -> TriggerClass:
        return TriggerClass(v) if isinstance(v, str) else TriggerClass.SINGLE

    @field_validator("recipe", mode="before")
    @classmethod
    def coerce_recipe(cls, v: Any) -> list[Any]:
        if not isinstance(v, list):
            return []
        return [step for step in v if isinstance(step, dict | RecipeStep)]

    @field_validator("limitation", mode="before")
    @classmethod
    def coerce_limitation(cls, v: Any) -> Any:
        return v if isinstance(v, dict | Limitation) else None

    @property
    def is_multi(self) -> bool:
        return self.trigger_class == TriggerClass.MULTI

    @property
    def sources(self) -> list[str]:
        return [s.strip() for s in self.source.split(",") if s.strip()]


class LogFile(BaseModel):
    """A named log file supplied to the files-aware evaluation."""

    name: str = "unknown"
    content: str = ""

    @field_validator("name", mode="before")
    @classmethod
    def coerce_name(cls, v: Any) -> str:
        return str(v) if v else "unknown"

    @field_validator("content", mode="before")
    @classmethod
    def coerce_content(cls, v: Any) -> str:
        return "" if v is None else str(v)


# =============================================================================
# Validation Result Schemas
# =============================================================================


class RecipeValidationIssue(BaseModel):
    """A validation finding for a trigger configuration."""

    field: str = Field(..., description="Field path that has the issue")
    message: str = Field(..., description="Issue message")
    severity: str = Field("error", description="Severity: error, warning")


class RecipeValidationResult(BaseModel):
    """Result of trigger validation."""

    valid: bool = Field(..., description="Whether the trigger is valid")
    errors: list[RecipeValidationIssue] = Field(default_factory=list)
    warnings: list[RecipeValidationIssue] = Field(default_factory=list)
