"""logtrigger services package.

Contains the caller-facing services for:
- Trigger tester: evaluation of triggers against log text and files
- Recipe validator: static checks of trigger configurations
- Describer: plain-English trigger descriptions
"""

from logtrigger.services.describer import describe_trigger
from logtrigger.services.recipe_validator import RecipeValidator, get_recipe_validator
from logtrigger.services.trigger_tester import TriggerTester, get_trigger_tester

__all__ = [
    "TriggerTester",
    "get_trigger_tester",
    "RecipeValidator",
    "get_recipe_validator",
    "describe_trigger",
]
