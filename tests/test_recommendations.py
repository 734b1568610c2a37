from datetime import timedelta

import pytest

from core.config import AnalysisPreferences
from core.models import HealthScore, IssueSeverity, RecommendationKind
from factories import at, event
from services.conflicts import detect_conflicts
from services.logistics import analyze_logistics
from services.recommendations import (
    conflict_confidence,
    generate_recommendations,
    recommendation_for_issue,
    recommendations_for_conflict,
    recommendations_for_health,
)
from services.travel import FlatRateTravelEstimator

HEALTHY = HealthScore(overall=100, time_utilization=100, conflict_management=100, balance=100, buffer=100)


@pytest.mark.parametrize("count, expected", [(2, 0.8), (3, 0.7), (4, 0.6), (7, 0.3), (12, 0.3)])
def test_conflict_confidence(count, expected) -> None:
    assert conflict_confidence(count) == expected


def test_pair_conflict_gets_reschedule_and_shorten(preferences) -> None:
    first = event(at(9), at(10), title="Planning")
    second = event(at(9, 30), at(10, 30), title="1:1")
    conflict = detect_conflicts([first, second])[0]

    recommendations = recommendations_for_conflict(conflict, preferences)

    kinds = [item.kind for item in recommendations]
    assert kinds == [RecommendationKind.RESCHEDULE, RecommendationKind.SHORTEN]
    assert all(item.confidence == 0.8 for item in recommendations)
    assert all(item.conflict_id == conflict.id for item in recommendations)

    reschedule = recommendations[0]
    assert reschedule.action.event_id == second.id
    assert reschedule.action.new_start == at(10)
    assert reschedule.action.new_end == at(11)


def test_decline_needs_exactly_one_tentative_event(preferences) -> None:
    optional = event(at(9, 30), at(9, 50), tentative=True, title="Optional sync")
    required = event(at(9), at(9, 40), title="Review")
    conflict = detect_conflicts([optional, required])[0]

    kinds = [item.kind for item in recommendations_for_conflict(conflict, preferences)]
    assert RecommendationKind.DECLINE in kinds

    both = detect_conflicts([optional, event(at(9), at(9, 40), tentative=True)])[0]
    kinds = [item.kind for item in recommendations_for_conflict(both, preferences)]
    assert RecommendationKind.DECLINE not in kinds


def test_short_events_are_not_shortened(preferences) -> None:
    conflict = detect_conflicts([event(at(9), at(9, 20)), event(at(9, 10), at(9, 30))])[0]
    kinds = [item.kind for item in recommendations_for_conflict(conflict, preferences)]
    assert kinds == [RecommendationKind.RESCHEDULE]


def test_shorten_trims_the_longest_event_before_the_overlap(preferences) -> None:
    workshop = event(at(9), at(12), title="Workshop")
    call = event(at(11, 30), at(12, 15), title="Call")
    conflict = detect_conflicts([workshop, call])[0]

    shorten = [item for item in recommendations_for_conflict(conflict, preferences) if item.kind == RecommendationKind.SHORTEN][0]

    assert shorten.action.event_id == workshop.id
    assert (shorten.action.new_start, shorten.action.new_end) == (at(9), at(11, 30))


def test_high_logistics_issue_shifts_the_next_event(preferences) -> None:
    office = event(at(9), at(10), location="Office")
    client = event(at(10, 20), at(11), location="Client HQ", title="Client review")
    issue = analyze_logistics([office, client], 15, True, FlatRateTravelEstimator(30))[0]
    assert issue.severity == IssueSeverity.HIGH

    recommendation = recommendation_for_issue(issue)

    assert recommendation.kind == RecommendationKind.RESCHEDULE
    assert recommendation.confidence == 0.8
    assert recommendation.issue_id == issue.id
    assert recommendation.action.event_id == client.id
    assert recommendation.action.new_start == client.start + timedelta(minutes=25)
    assert recommendation.action.new_end == client.end + timedelta(minutes=25)


def test_medium_logistics_issue_gets_no_recommendation(preferences) -> None:
    office = event(at(9), at(10), location="Office")
    client = event(at(10, 20), at(11), location="Client HQ")
    issues = analyze_logistics([office, client], 15, True, FlatRateTravelEstimator(15))
    assert issues[0].severity == IssueSeverity.MEDIUM

    assert generate_recommendations([], issues, HEALTHY, preferences) == []


def test_health_driven_recommendations() -> None:
    strained = HealthScore(overall=50, time_utilization=100, conflict_management=100, balance=40, buffer=20)

    kinds = [item.kind for item in recommendations_for_health(strained)]

    assert kinds == [RecommendationKind.ADD_BREAKS, RecommendationKind.PROTECT_PERSONAL_TIME]
    assert recommendations_for_health(HEALTHY) == []


def test_generate_orders_conflicts_then_issues_then_health(preferences) -> None:
    conflict = detect_conflicts([event(at(9), at(10)), event(at(9, 30), at(10, 30))])[0]
    office = event(at(13), at(14), location="Office")
    client = event(at(14), at(15), location="Client HQ")
    issues = analyze_logistics([office, client], 15, True, FlatRateTravelEstimator(30))
    strained = HealthScore(overall=60, time_utilization=100, conflict_management=80, balance=100, buffer=10)

    recommendations = generate_recommendations([conflict], issues, strained, preferences)

    assert [item.conflict_id is not None for item in recommendations] == [True, True, False, False]
    assert recommendations[2].issue_id == issues[0].id
    assert recommendations[3].kind == RecommendationKind.ADD_BREAKS


def test_confidence_stays_in_bounds_for_large_conflicts() -> None:
    events = [event(at(9), at(9, 45) + timedelta(minutes=index)) for index in range(9)]
    conflict = detect_conflicts(events)[0]
    for recommendation in recommendations_for_conflict(conflict, AnalysisPreferences()):
        assert recommendation.confidence == 0.3


def _shorten_of(conflict, preferences):
    return [item for item in recommendations_for_conflict(conflict, preferences) if item.kind == RecommendationKind.SHORTEN]


def test_identical_events_are_never_shortened_to_nothing(preferences) -> None:
    conflict = detect_conflicts([event(at(9), at(10), id="a"), event(at(9), at(10), id="b")])[0]

    assert _shorten_of(conflict, preferences) == []
    for recommendation in recommendations_for_conflict(conflict, preferences):
        action = recommendation.action
        if action.new_start is not None:
            assert action.new_end > action.new_start


def test_nested_event_trims_the_outer_one(preferences) -> None:
    outer = event(at(9), at(12), title="Offsite")
    inner = event(at(10), at(11), title="Call")
    conflict = detect_conflicts([outer, inner])[0]

    shorten = _shorten_of(conflict, preferences)[0]

    assert shorten.action.event_id == outer.id
    assert (shorten.action.new_start, shorten.action.new_end) == (at(9), at(10))
    assert "by 120 minutes" in shorten.description


def test_shorten_description_reports_the_minutes_actually_cut(preferences) -> None:
    workshop = event(at(9), at(12), title="Workshop")
    conflict = detect_conflicts([workshop, event(at(10), at(11)), event(at(10, 30), at(11, 30))])[0]
    assert conflict.overlap_minutes == 30

    shorten = _shorten_of(conflict, preferences)[0]

    assert shorten.action.event_id == workshop.id
    assert shorten.action.new_end == at(10, 30)
    assert "by 90 minutes" in shorten.description
