"""logtrigger - multi-step log trigger evaluation.

Evaluates trigger recipes (ordered keyword and delay steps with counts,
time windows and numeric conditions) against log text, with rate
limitation and key-correlated MULTI instances.
"""

from logtrigger.services.trigger_tester import TriggerTester, get_trigger_tester

__version__ = "1.0.0"

__all__ = [
    "TriggerTester",
    "get_trigger_tester",
    "__version__",
]
