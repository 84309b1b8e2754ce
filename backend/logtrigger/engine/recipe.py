"""Engine view of a trigger recipe.

Steps form a (possibly cyclic) graph linked by ``next``. The engine keeps
them as an array plus a name -> index map built once per recipe; a
transition is an index reassignment.
"""

from logtrigger.schemas.trigger import RecipeStep, TriggerConfig, is_terminal_action

ACTION_LABELS = {
    "@recovery": "-> run scenario",
    "@notify": "-> send mail",
    "@popup": "-> show popup",
    "@suspend": "-> suspend triggers",
    "@resume": "-> resume triggers",
}

RESET_LABEL = "-> reset chain"
END_LABEL = "-> end"


def next_action_label(step: RecipeStep) -> str:
    """Human-readable label for what happens after a step completes."""
    if step.next in ("@script", "@Script"):
        if step.script and step.script.name:
            return f"-> run {step.script.name}"
        return "-> run script scenario"
    if step.next in ACTION_LABELS:
        return ACTION_LABELS[step.next]
    if step.next:
        return f"-> go to {step.next}"
    return END_LABEL


class Recipe:
    """Ordered steps with name lookup."""

    def __init__(self, steps: list[RecipeStep]):
        self.steps = list(steps)
        self.names = [step.name or f"Step_{i + 1}" for i, step in enumerate(self.steps)]
        self._index: dict[str, int] = {}
        for i, name in enumerate(self.names):
            # First occurrence wins for duplicate names
            self._index.setdefault(name, i)

    @classmethod
    def from_trigger(cls, trigger: TriggerConfig) -> "Recipe":
        return cls(trigger.recipe)

    def __len__(self) -> int:
        return len(self.steps)

    def __bool__(self) -> bool:
        return bool(self.steps)

    def resolve(self, next_action: str) -> int | None:
        """Index of the step a ``next`` value names, or None."""
        if not next_action or is_terminal_action(next_action):
            return None
        return self._index.get(next_action)

    def step_named(self, name: str) -> RecipeStep | None:
        index = self._index.get(name)
        return None if index is None else self.steps[index]
