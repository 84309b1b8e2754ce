"""logtrigger evaluation engine.

Provides the building blocks of trigger evaluation:
- Pattern compilation of trigger templates and parameter conditions
- Chain execution of a recipe over log lines
- Rate limitation of repeated firings
- Multi-instance coordination for MULTI triggers
"""

from logtrigger.engine.chain_executor import ChainExecutor, StepScanner, StepSignal
from logtrigger.engine.multi_instance import MultiInstanceCoordinator, MultiRun
from logtrigger.engine.pattern_compiler import CompiledPattern, compile_template
from logtrigger.engine.rate_limiter import LimitationRun, RateLimiter
from logtrigger.engine.recipe import Recipe
from logtrigger.engine.timestamps import TimestampExtractor, build_extractor, parse_duration

__all__ = [
    "ChainExecutor",
    "StepScanner",
    "StepSignal",
    "MultiInstanceCoordinator",
    "MultiRun",
    "CompiledPattern",
    "compile_template",
    "LimitationRun",
    "RateLimiter",
    "Recipe",
    "TimestampExtractor",
    "build_extractor",
    "parse_duration",
]
