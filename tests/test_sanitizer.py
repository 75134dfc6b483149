import pytest

from rubric import DEFAULT_RUBRIC
from sanitizer import (
    STANDARD_APPLIED_NOTE,
    STANDARD_APPLIED_SHORT,
    SanitizeCancelled,
    find_violations,
    is_compliant,
    sanitize_session,
    sanitize_sessions,
)

LOWERED = DEFAULT_RUBRIC.with_max_points({"s1-3": 1, "s2-8": 2})


def test_find_violations_lists_scores_above_cap(make_session):
    session = make_session(scores={"s1-3": 2, "s2-8": 4, "s1-1": 1})
    assert sorted(find_violations(session, LOWERED)) == [("s1-3", 2, 1), ("s2-8", 4, 2)]
    assert not is_compliant(session, LOWERED)
    assert is_compliant(session, DEFAULT_RUBRIC)


def test_unknown_ids_never_violate(make_session):
    assert is_compliant(make_session(scores={"legacy-1": 99}), DEFAULT_RUBRIC)


def test_sanitize_session_clamps_and_recomputes_total(make_session):
    session = make_session(scores={"s1-3": 2, "s2-8": 4, "s1-1": 1}, ai_feedback="Keep it up.")

    fixed = sanitize_session(session, LOWERED)

    assert fixed.scores == {"s1-3": 1, "s2-8": 2, "s1-1": 1}
    assert fixed.total_score == 4
    assert fixed.ai_feedback == f"Keep it up.\n\n{STANDARD_APPLIED_NOTE}"
    assert session.total_score == 7


def test_compliant_session_is_left_alone(make_session):
    assert sanitize_session(make_session(scores={"s1-1": 1}), LOWERED) is None


def test_empty_feedback_gets_short_marker(make_session):
    fixed = sanitize_session(make_session(scores={"s1-3": 2}), LOWERED)
    assert fixed.ai_feedback == STANDARD_APPLIED_SHORT


def test_marker_is_not_appended_twice(make_session):
    session = make_session(scores={"s1-3": 2}, ai_feedback=f"Earlier.\n\n{STANDARD_APPLIED_NOTE}")
    fixed = sanitize_session(session, LOWERED)
    assert fixed.ai_feedback.count("[Hub Standard Applied") == 1


def test_sanitize_sessions_keeps_clean_objects(make_session):
    clean = make_session("1", scores={"s1-1": 1})
    dirty = make_session("2", scores={"s1-3": 2})

    result = sanitize_sessions([clean, dirty], LOWERED)

    assert result.corrected == 1
    assert result.sessions[0] is clean
    assert result.sessions[1].scores["s1-3"] == 1
    assert result.summary() == "Sanitized 1 records. Hub compliance is now 100%."


def test_sanitize_is_idempotent(make_session):
    sessions = [make_session("1", scores={"s1-3": 2, "s2-8": 4}), make_session("2")]

    first = sanitize_sessions(sessions, LOWERED)
    second = sanitize_sessions(first.sessions, LOWERED)

    assert second.corrected == 0
    assert second.sessions == first.sessions
    assert second.summary() == "All hub data is within standard limits. No action needed."
    for session in second.sessions:
        assert session.total_score == sum(session.scores.values())


def test_sanitize_can_be_cancelled(make_session):
    with pytest.raises(SanitizeCancelled):
        sanitize_sessions([make_session()], LOWERED, should_cancel=lambda: True)
