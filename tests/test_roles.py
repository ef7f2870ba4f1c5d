#!/usr/bin/env python3
"""
Tests for speaker role resolution.

Run with:
    python tests/run_tests.py test_roles
    python -m pytest tests/test_roles.py -v
"""

import sys
from pathlib import Path

TOOL_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(TOOL_ROOT))

from components.archive.lib.roles import (
    resolve_roles,
    detect_first_speaker,
    is_continuation,
    force_alternation,
)
from components.archive.lib.models import Segment, Turn, HUMAN, ASSISTANT

try:
    import pytest
    HAS_PYTEST = True
except ImportError:
    HAS_PYTEST = False


# =============================================================================
# detect_first_speaker
# =============================================================================

def test_short_question_is_human():
    assert detect_first_speaker("What's up?") == HUMAN


def test_long_question_not_forced_human():
    text = "Hello! I'm Claude, an AI assistant. " + "x" * 250 + "?"
    assert detect_first_speaker(text) == ASSISTANT


def test_assistant_openers():
    assert detect_first_speaker("Hello! I'm Claude, an AI assistant.") == ASSISTANT
    assert detect_first_speaker("Welcome back. Tell me what you are working on.") == ASSISTANT
    assert detect_first_speaker("As an AI language model, I cannot browse.") == ASSISTANT


def test_assistant_status_lines():
    assert detect_first_speaker("Thought for 12s\nLet me think.") == ASSISTANT
    assert detect_first_speaker("Searched for flights to Lisbon") == ASSISTANT


def test_default_is_human():
    assert detect_first_speaker("I have a question about taxes.") == HUMAN
    assert detect_first_speaker("") == HUMAN


# =============================================================================
# is_continuation
# =============================================================================

def test_continuation_markers():
    assert is_continuation("- a bullet")
    assert is_continuation("2. second step")
    assert is_continuation("iv. roman numeral")
    assert is_continuation("lowercase start")
    assert is_continuation("However, there is more.")
    assert is_continuation("Also worth noting.")


def test_not_continuation():
    assert not is_continuation("The end.")
    assert not is_continuation("Andrew said hi.")
    assert not is_continuation("Sometimes it rains.")


# =============================================================================
# force_alternation
# =============================================================================

def test_force_alternation_single_role():
    turns = [Turn(HUMAN, "one"), Turn(HUMAN, "two"), Turn(HUMAN, "three")]

    result = force_alternation(turns)

    assert [t.role for t in result] == [HUMAN, ASSISTANT, HUMAN]
    assert [t.content for t in result] == ["one", "two", "three"]


def test_force_alternation_starts_from_first_role():
    turns = [Turn(ASSISTANT, "one"), Turn(ASSISTANT, "two")]

    assert [t.role for t in force_alternation(turns)] == [ASSISTANT, HUMAN]


def test_force_alternation_mixed_unchanged():
    turns = [Turn(HUMAN, "one"), Turn(HUMAN, "two"), Turn(ASSISTANT, "three")]

    assert force_alternation(turns) is turns


def test_force_alternation_short_unchanged():
    turns = [Turn(HUMAN, "only")]

    assert force_alternation(turns) is turns
    assert force_alternation([]) == []


# =============================================================================
# resolve_roles
# =============================================================================

def test_unlabeled_alternate_from_heuristic():
    segments = [
        Segment("Hello! I'm Claude, an AI assistant."),
        Segment("Can you help me plan a trip?"),
        Segment("Of course. Where to?"),
    ]

    turns, detected = resolve_roles(segments)

    assert detected == ASSISTANT
    assert [t.role for t in turns] == [ASSISTANT, HUMAN, ASSISTANT]


def test_labels_reset_alternation():
    segments = [
        Segment("Hi?", HUMAN, 0),
        Segment("Hello!", None, 1),
        Segment("Question two", HUMAN, 2),
        Segment("Answer two", None, 3),
    ]

    turns, _ = resolve_roles(segments)

    assert [t.role for t in turns] == [HUMAN, ASSISTANT, HUMAN, ASSISTANT]


def test_continuation_merge_keeps_first_index():
    segments = [
        Segment("Part one.", ASSISTANT, 0),
        Segment("- bullet", ASSISTANT, 1),
        Segment("Thanks?", HUMAN, 2),
    ]

    turns, detected = resolve_roles(segments)

    assert detected == ASSISTANT
    assert len(turns) == 2
    assert turns[0].content == "Part one.\n\n- bullet"
    assert turns[0].source_index == 0
    assert turns[1].source_index == 2


def test_same_role_not_continuation_kept_separate():
    """Two same-labeled turns that don't read as a continuation are re-alternated."""
    segments = [Segment("First.", HUMAN, 0), Segment("Second.", HUMAN, 1)]

    turns, _ = resolve_roles(segments)

    assert [(t.role, t.content) for t in turns] == [(HUMAN, "First."), (ASSISTANT, "Second.")]


def test_empty_segments_dropped():
    segments = [Segment("   "), Segment("What now?"), Segment("")]

    turns, _ = resolve_roles(segments)

    assert [(t.role, t.content) for t in turns] == [(HUMAN, "What now?")]


def test_no_segments():
    assert resolve_roles([]) == ([], HUMAN)
    assert resolve_roles([], first_speaker=ASSISTANT) == ([], ASSISTANT)


def test_override_reported_separately():
    segments = [Segment("Is this thing on?"), Segment("Yes, loud and clear.")]

    turns, detected = resolve_roles(segments, first_speaker=ASSISTANT)

    assert detected == HUMAN
    assert [t.role for t in turns] == [ASSISTANT, HUMAN]


def test_no_adjacent_roles_after_resolution():
    segments = [
        Segment("Question?", HUMAN, 0),
        Segment("Answer.", ASSISTANT, 1),
        Segment("and more answer", ASSISTANT, 2),
        Segment("Another question?", None, 3),
        Segment("Reply.", None, 4),
    ]

    turns, _ = resolve_roles(segments)

    for a, b in zip(turns, turns[1:]):
        assert a.role != b.role


def run_all_tests():
    """Run all tests and report results."""
    tests = [
        test_short_question_is_human,
        test_long_question_not_forced_human,
        test_assistant_openers,
        test_assistant_status_lines,
        test_default_is_human,
        test_continuation_markers,
        test_not_continuation,
        test_force_alternation_single_role,
        test_force_alternation_starts_from_first_role,
        test_force_alternation_mixed_unchanged,
        test_force_alternation_short_unchanged,
        test_unlabeled_alternate_from_heuristic,
        test_labels_reset_alternation,
        test_continuation_merge_keeps_first_index,
        test_same_role_not_continuation_kept_separate,
        test_empty_segments_dropped,
        test_no_segments,
        test_override_reported_separately,
        test_no_adjacent_roles_after_resolution,
    ]

    print("\nRunning role resolution tests...\n")

    passed = 0
    failed = 0

    for test in tests:
        try:
            test()
            print(f"  ✓ {test.__name__}")
            passed += 1
        except AssertionError as e:
            print(f"  ✗ {test.__name__}: {e}")
            failed += 1
        except Exception as e:
            print(f"  ✗ {test.__name__}: {type(e).__name__}: {e}")
            failed += 1

    print(f"\n{passed} passed, {failed} failed")
    return failed == 0


if __name__ == "__main__":
    success = run_all_tests()
    sys.exit(0 if success else 1)
