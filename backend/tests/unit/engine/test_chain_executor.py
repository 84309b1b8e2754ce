"""Unit tests for the chain executor.

Covers keyword steps with counts and sliding time windows, the inverted
semantics of delay steps, transitions between steps and the termination
guards.
"""

from datetime import datetime, timedelta

import pytest

from logtrigger.engine.chain_executor import ChainExecutor
from logtrigger.engine.recipe import Recipe
from logtrigger.engine.timestamps import TimestampExtractor
from logtrigger.schemas.trigger import RecipeStep

pytestmark = pytest.mark.unit

T0 = datetime(2026, 2, 11, 10, 0, 0)


def build_recipe(*steps: dict) -> Recipe:
    return Recipe([RecipeStep.model_validate(step) for step in steps])


@pytest.fixture
def executor(timestamp_format):
    """Executor reading 'yyyy-MM-dd HH:mm:ss' timestamps."""
    return ChainExecutor(TimestampExtractor(timestamp_format), max_resets=100)


@pytest.fixture
def plain_executor():
    """Executor without timestamp support."""
    return ChainExecutor(max_resets=100)


@pytest.fixture
def start_abort_recipe():
    """START fires step 1; ABORT within 5 seconds cancels."""

    def _build(delay_next: str) -> Recipe:
        return build_recipe(
            {"name": "step1", "type": "regex", "trigger": [".*START.*"], "next": "step2"},
            {
                "name": "step2",
                "type": "delay",
                "trigger": [".*ABORT.*"],
                "duration": "5 seconds",
                "next": delay_next,
            },
        )

    return _build


class TestKeywordSteps:
    """Tests for KEYWORD steps."""

    def test_single_match(self, plain_executor):
        """Test one match fires the step and captures groups."""
        recipe = build_recipe({"trigger": [r"ERROR (<<code>>\d+)"], "next": ""})
        run = plain_executor.run(recipe, ["INFO ok", "ERROR 500", ""])

        assert run.all_fired is True
        step = run.step_results[0]
        assert step.fired is True
        assert step.name == "Step_1"
        assert step.matches[0].line_number == 2
        assert step.matches[0].captured_groups == {"code": "500"}
        assert step.tested_line_count == 2
        assert run.resume_line_offset == 2

    def test_not_enough_matches(self, plain_executor):
        """Test times is not reached."""
        recipe = build_recipe({"trigger": [".*ERROR.*"], "times": 3})
        run = plain_executor.run(recipe, ["ERROR one", "ERROR two"])

        assert run.all_fired is False
        assert run.step_results[0].fired is False
        assert run.step_results[0].match_count == 2
        assert run.resume_line_offset == 0

    def test_enough_matches(self, plain_executor):
        """Test times is reached on the third match."""
        recipe = build_recipe({"trigger": [".*ERROR.*"], "times": 3})
        run = plain_executor.run(recipe, ["ERROR one", "INFO", "ERROR two", "ERROR three"])

        assert run.all_fired is True
        assert [m.line_number for m in run.step_results[0].matches] == [1, 3, 4]

    def test_first_matching_item_wins(self, plain_executor):
        """Test items are tried in order."""
        recipe = build_recipe({"trigger": [".*ERROR.*", ".*FAIL.*"]})

        assert plain_executor.run(recipe, ["FAIL msg"]).step_results[0].matches[0].pattern == ".*FAIL.*"
        assert plain_executor.run(recipe, ["ERROR FAIL"]).step_results[0].matches[0].pattern == ".*ERROR.*"

    def test_partial_pattern_does_not_match(self, plain_executor):
        """Test patterns must cover the whole line."""
        recipe = build_recipe({"trigger": [".*ERROR"]})
        run = plain_executor.run(recipe, ["ERROR occurred"])

        assert run.all_fired is False
        assert run.step_results[0].match_count == 0

    def test_duration_ignored_without_timestamps(self, plain_executor):
        """Test a window is not enforced when no timestamp format is set."""
        recipe = build_recipe({"trigger": [".*ERROR.*"], "times": 2, "duration": "10 minutes"})
        run = plain_executor.run(recipe, ["ERROR first", "ERROR second"])

        assert run.all_fired is True
        assert run.step_results[0].duration_check is None

    def test_duration_skipped_for_unparsable_lines(self, executor):
        """Test matches without timestamps fire on count alone."""
        recipe = build_recipe({"trigger": [".*ERROR.*"], "times": 2, "duration": "10 seconds"})
        run = executor.run(recipe, ["ERROR first", "ERROR second"])

        assert run.all_fired is True
        check = run.step_results[0].duration_check
        assert check.passed is True
        assert "skipped" in check.message


class TestSlidingWindow:
    """Tests for times within duration."""

    def test_fires_at_earliest_qualifying_run(self, executor, make_log):
        """Test the oldest match is evicted until the window fits."""
        recipe = build_recipe({"trigger": [".*ERROR.*"], "times": 2, "duration": "10 seconds"})
        lines = make_log((0, "ERROR a"), (15, "ERROR b"), (20, "ERROR c"), (21, "ERROR d")).split("\n")
        run = executor.run(recipe, lines)

        step = run.step_results[0]
        assert run.all_fired is True
        assert [m.line_number for m in step.matches] == [2, 3]
        assert step.duration_check.passed is True
        assert step.duration_check.elapsed == timedelta(seconds=5)
        assert run.firing_timestamp == T0 + timedelta(seconds=20)

    def test_window_boundary_is_inclusive(self, executor, make_log):
        """Test a span equal to the duration fires."""
        recipe = build_recipe({"trigger": [".*ERROR.*"], "times": 2, "duration": "10 seconds"})
        run = executor.run(recipe, make_log((0, "ERROR a"), (10, "ERROR b")).split("\n"))

        assert run.all_fired is True

    def test_outside_window_does_not_fire(self, executor, make_log):
        """Test matches too far apart never fire."""
        recipe = build_recipe({"trigger": [".*ERROR.*"], "times": 2, "duration": "10 minutes"})
        run = executor.run(recipe, make_log((0, "ERROR first"), (900, "ERROR second")).split("\n"))

        step = run.step_results[0]
        assert run.all_fired is False
        assert step.fired is False
        assert step.match_count == 1
        assert step.duration_check.passed is False

    def test_reference_is_previous_step(self, executor, make_log):
        """Test a later step's window starts at the previous step's last match."""
        recipe = build_recipe(
            {"name": "Step_1", "trigger": [".*START.*"], "next": "Step_2"},
            {"name": "Step_2", "trigger": [".*END.*"], "duration": "10 seconds", "next": "@notify"},
        )
        lines = make_log((0, "START"), (15, "END")).split("\n")
        run = executor.run(recipe, lines)

        assert run.all_fired is False
        assert run.step_results[1].fired is False
        assert run.step_results[1].duration_check.passed is False

        lines = make_log((0, "START"), (8, "END")).split("\n")
        assert executor.run(recipe, lines).all_fired is True


class TestDelaySteps:
    """Tests for DELAY steps."""

    def test_cancel_resets_chain(self, executor, make_log, start_abort_recipe):
        """Test a match inside the window cancels and resets the chain."""
        lines = make_log((0, "START"), (2, "ABORT")).split("\n")
        run = executor.run(start_abort_recipe("step1"), lines)

        assert run.all_fired is False
        assert run.firing_timestamp is None
        delay = run.step_results[1]
        assert delay.fired is True
        assert delay.cancelled is True
        assert delay.timed_out is False
        assert delay.reset_chain is True
        assert delay.next_action == "-> reset chain"
        assert delay.duration_check.passed is True
        # Reset: step 1 scanned again from the next line
        assert run.step_results[2].name == "step1"
        assert run.step_results[2].fired is False

    def test_timeout_by_clock_proceeds(self, executor, make_log, start_abort_recipe):
        """Test an ABORT after the window is a timeout into next."""
        lines = make_log((0, "START"), (10, "ABORT")).split("\n")
        run = executor.run(start_abort_recipe("@notify"), lines)

        delay = run.step_results[1]
        assert run.all_fired is True
        assert delay.fired is False
        assert delay.cancelled is False
        assert delay.timed_out is True
        assert delay.next_action == "-> send mail"
        assert run.firing_timestamp == T0 + timedelta(seconds=5)
        # The line proving the timeout is not consumed
        assert run.resume_line_offset == 1

    def test_timeout_at_end_of_log(self, executor, make_log, start_abort_recipe):
        """Test the log ending inside the window is a timeout."""
        lines = make_log((0, "START"), (2, "nothing relevant")).split("\n")
        run = executor.run(start_abort_recipe("@notify"), lines)

        delay = run.step_results[1]
        assert run.all_fired is True
        assert delay.timed_out is True
        assert "End of log" in delay.duration_check.message
        assert run.firing_timestamp == T0 + timedelta(seconds=5)

    def test_timeout_continues_with_unconsumed_line(self, executor, make_log):
        """Test the next step sees the line that ended the delay."""
        recipe = build_recipe(
            {"name": "Step_1", "trigger": [".*ERROR.*"], "next": "Delay_1"},
            {"name": "Delay_1", "type": "delay", "trigger": [".*CANCEL.*"], "duration": "10 seconds", "next": "Step_3"},
            {"name": "Step_3", "trigger": [".*CRITICAL.*"], "next": "@script", "script": {"name": "alert.sh"}},
        )
        lines = make_log((0, "ERROR occurred"), (20, "CRITICAL failure")).split("\n")
        run = executor.run(recipe, lines)

        assert run.all_fired is True
        assert [s.name for s in run.step_results] == ["Step_1", "Delay_1", "Step_3"]
        assert run.step_results[2].matches[0].line_number == 2
        assert run.step_results[2].next_action == "-> run alert.sh"

    def test_delay_without_duration_cancels_on_match(self, plain_executor):
        """Test a delay with no window cancels on any match."""
        recipe = build_recipe(
            {"name": "Step_1", "trigger": [".*ERROR.*"], "next": "Step_2"},
            {"name": "Step_2", "type": "delay", "trigger": [".*CANCEL.*"], "next": "@notify"},
        )
        run = plain_executor.run(recipe, ["ERROR occurred", "CANCEL the alert"])

        assert run.step_results[1].cancelled is True
        assert run.step_results[1].reset_chain is True
        assert run.all_fired is False

    def test_delay_without_next_matches_like_keyword(self, plain_executor):
        """Test a delay with nothing to cancel ends the chain successfully."""
        recipe = build_recipe({"type": "delay", "trigger": [".*CANCEL.*"], "next": ""})
        run = plain_executor.run(recipe, ["CANCEL the operation"])

        assert run.all_fired is True
        assert run.step_results[0].fired is True
        assert run.step_results[0].reset_chain is False
        assert run.step_results[0].next_action == "-> end"

    def test_timeout_without_next_does_not_fire(self, plain_executor):
        """Test a timed-out delay with nowhere to go ends the chain."""
        recipe = build_recipe(
            {"name": "Step_1", "trigger": [".*ERROR.*"], "next": "Step_2"},
            {"name": "Step_2", "type": "delay", "trigger": [".*CANCEL.*"], "next": ""},
        )
        run = plain_executor.run(recipe, ["ERROR occurred", "INFO"])

        assert run.all_fired is False
        assert run.step_results[1].timed_out is True


class TestTransitions:
    """Tests for next resolution and termination guards."""

    def test_terminal_labels(self, plain_executor):
        """Test next-action labels of terminal tags."""
        labels = {
            "@recovery": "-> run scenario",
            "@notify": "-> send mail",
            "@popup": "-> show popup",
            "@suspend": "-> suspend triggers",
            "@resume": "-> resume triggers",
            "@Script": "-> run script scenario",
        }
        for next_action, label in labels.items():
            recipe = build_recipe({"trigger": [".*ERROR.*"], "next": next_action})
            run = plain_executor.run(recipe, ["ERROR"])
            assert run.all_fired is True
            assert run.step_results[0].next_action == label

    def test_default_step_names_resolve(self, plain_executor):
        """Test unnamed steps are addressable as Step_<n>."""
        recipe = build_recipe(
            {"trigger": [".*ERROR.*"], "next": "Step_2"},
            {"trigger": [".*CRITICAL.*"]},
        )
        run = plain_executor.run(recipe, ["ERROR first", "CRITICAL second"])

        assert run.all_fired is True
        assert [s.name for s in run.step_results] == ["Step_1", "Step_2"]

    def test_unresolved_next_does_not_fire(self, plain_executor):
        """Test a next naming no step ends the chain non-firing."""
        recipe = build_recipe({"trigger": [".*ERROR.*"], "next": "Missing"})
        run = plain_executor.run(recipe, ["ERROR"])

        assert run.step_results[0].fired is True
        assert run.all_fired is False

    def test_reset_cap(self):
        """Test endless delay cancels stop after the reset cap."""
        recipe = build_recipe(
            {"name": "Step_1", "trigger": [".*"], "next": "Step_2"},
            {"name": "Step_2", "type": "delay", "trigger": [".*"], "next": "Step_1"},
        )
        lines = [f"line {i}" for i in range(300)]
        run = ChainExecutor(max_resets=100).run(recipe, lines)

        assert run.all_fired is False
        assert sum(1 for s in run.step_results if s.cancelled) == 101

    def test_delay_cycle_terminates(self, plain_executor):
        """Test delays timing out into each other do not loop forever."""
        recipe = build_recipe(
            {"name": "A", "type": "delay", "trigger": [".*CANCEL.*"], "next": "B"},
            {"name": "B", "type": "delay", "trigger": [".*CANCEL.*"], "next": "A"},
        )
        run = plain_executor.run(recipe, ["x"])

        assert run.all_fired is False
        assert all(s.timed_out for s in run.step_results)

    def test_empty_recipe(self, plain_executor):
        """Test no steps means no results."""
        run = plain_executor.run(Recipe([]), ["ERROR"])

        assert run.step_results == ()
        assert run.all_fired is False

    def test_start_offset(self, plain_executor):
        """Test scanning starts at the given line."""
        recipe = build_recipe({"trigger": [".*ERROR.*"]})
        run = plain_executor.run(recipe, ["ERROR one", "INFO", "ERROR two"], start_offset=1)

        assert run.step_results[0].matches[0].line_number == 3
        assert run.resume_line_offset == 3

    def test_deterministic(self, executor, make_log, start_abort_recipe):
        """Test identical input gives identical results."""
        lines = make_log((0, "START"), (2, "ABORT"), (3, "START"), (20, "x")).split("\n")
        recipe = start_abort_recipe("@notify")

        assert executor.run(recipe, lines) == executor.run(recipe, lines)


class TestDiagnostics:
    """Tests for rejected matches and pattern errors."""

    def test_rejected_matches(self, plain_executor):
        """Test condition failures are kept but do not count."""
        recipe = build_recipe(
            {
                "trigger": [
                    {"syntax": r".*value=(<<val>[\d.]+)", "params": "ParamComparisionMatcher1@100,GTE,val"}
                ],
                "times": 2,
            }
        )
        run = plain_executor.run(recipe, ["value=50", "value=200", "value=150"])

        step = run.step_results[0]
        assert run.all_fired is True
        assert [m.captured_groups["val"] for m in step.matches] == ["200", "150"]
        assert len(step.rejected_matches) == 1
        rejected = step.rejected_matches[0]
        assert rejected.line_number == 1
        assert rejected.reason == "params_failed"
        assert rejected.failed_conditions[0].var_name == "val"
        assert rejected.failed_conditions[0].extracted_value == 50

    def test_regex_errors_deduplicated(self, plain_executor):
        """Test a broken pattern is reported once and others still match."""
        recipe = build_recipe({"trigger": ["[invalid", ".*ERROR.*"]})
        run = plain_executor.run(recipe, ["a", "b", "ERROR"])

        step = run.step_results[0]
        assert run.all_fired is True
        assert len(step.regex_errors) == 1
        assert step.regex_errors[0].startswith("[invalid")

    def test_invalid_pattern_never_matches(self, plain_executor):
        """Test an invalid pattern does not raise."""
        recipe = build_recipe({"trigger": ["[invalid"]})
        run = plain_executor.run(recipe, ["some text"])

        assert run.all_fired is False
        assert run.step_results[0].match_count == 0
