import os
import sys

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from bulk_propagation import Choice, Decision, bulk_values, negotiate
from fakes import entry
from session_models import SetValues

PLANNED = SetValues("50", "8")


def test_unchanged_values_are_saved_directly():
    decision = negotiate(entry("Bench", 3, reps=8), False, 50.0, 8, PLANNED, PLANNED)
    assert decision is Decision.SAVE_ONLY


def test_small_change_offers_plain_bulk_prompt():
    decision = negotiate(entry("Bench", 3, reps=8), False, 55.0, 9, PLANNED, PLANNED)
    assert decision is Decision.BULK_PROMPT


def test_large_rep_increase_offers_smart_prompt():
    decision = negotiate(entry("Bench", 3, reps=8), False, 50.0, 12, PLANNED, PLANNED)
    assert decision is Decision.SMART_REP


def test_threshold_is_exclusive():
    decision = negotiate(entry("Bench", 3, reps=8), False, 50.0, 11, PLANNED, PLANNED)
    assert decision is Decision.BULK_PROMPT


def test_reps_compare_against_plan_not_previous_set():
    previous = SetValues("50", "11")
    decision = negotiate(entry("Bench", 3, reps=8), False, 50.0, 12, previous, PLANNED)
    assert decision is Decision.SMART_REP


def test_last_set_and_time_based_skip_negotiation():
    assert (
        negotiate(entry("Bench", 3, reps=8), True, 60.0, 12, PLANNED, PLANNED)
        is Decision.SAVE_ONLY
    )
    plank = entry("Plank", 3, reps="45 sekunder", weight=None)
    assert (
        negotiate(plank, False, 10.0, 50, SetValues("", ""), SetValues("", "45"))
        is Decision.SAVE_ONLY
    )


def test_custom_threshold():
    decision = negotiate(entry("Bench", 3, reps=8), False, 50.0, 10, PLANNED, PLANNED, threshold=1)
    assert decision is Decision.SMART_REP


def test_bulk_values_per_choice():
    assert bulk_values(Choice.APPLY, 60.0, 12, PLANNED) == (60.0, 12)
    assert bulk_values(Choice.APPLY_KEEP_PLANNED_REPS, 60.0, 12, PLANNED) == (60.0, 8)
    assert bulk_values(Choice.APPLY_KEEP_PLANNED_REPS, 60.0, 12, SetValues("60", "")) == (60.0, 12)
    assert bulk_values(Choice.DECLINE, 60.0, 12, PLANNED) is None
