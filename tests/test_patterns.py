from datetime import date, datetime

from core.config import AnalysisWindow
from core.models import PatternCategory
from factories import at, event
from services.patterns import detect_patterns


def _packed_day(day: int, gap_after_first: int = 15):
    return [
        event(at(9, day=day), at(10, day=day)),
        event(at(10, gap_after_first, day=day), at(11, day=day)),
        event(at(11, 30, day=day), at(12, day=day)),
    ]


def test_empty_history_has_no_patterns(preferences) -> None:
    assert detect_patterns([], preferences) == []


def test_four_packed_days_trigger_back_to_back(preferences) -> None:
    history = [item for day in range(4) for item in _packed_day(day)]

    patterns = detect_patterns(history, preferences)

    assert [pattern.category for pattern in patterns] == [PatternCategory.BACK_TO_BACK]
    assert patterns[0].data_points == [1.0, 1.0, 1.0, 1.0]
    assert "4 consecutive days" in patterns[0].description


def test_three_packed_days_are_not_a_streak(preferences) -> None:
    history = [item for day in range(3) for item in _packed_day(day)]
    assert detect_patterns(history, preferences) == []


def test_long_gap_breaks_the_streak(preferences) -> None:
    history = []
    for day in range(5):
        history.extend(_packed_day(day, gap_after_first=45 if day == 2 else 15))

    patterns = detect_patterns(history, preferences)

    assert patterns == []


def test_back_to_back_series_reports_share_of_tight_transitions(preferences) -> None:
    history = []
    for day in range(4):
        history.extend(_packed_day(day))
    history.extend(_packed_day(4, gap_after_first=45))

    pattern = detect_patterns(history, preferences)[0]

    assert pattern.category == PatternCategory.BACK_TO_BACK
    assert pattern.data_points[-1] == 0.5


def test_no_lunch_days(preferences) -> None:
    history = [event(at(11, 30, day=day), at(14, 30, day=day)) for day in range(3)]

    patterns = detect_patterns(history, preferences)

    assert [pattern.category for pattern in patterns] == [PatternCategory.NO_LUNCH]
    assert patterns[0].data_points == [1.0, 1.0, 1.0]
    assert patterns[0].description.startswith("3 days")


def test_partial_lunch_counts_when_block_is_too_short(preferences) -> None:
    # free 12:00-12:15 and 13:45-14:00 only
    history = []
    for day in range(3):
        history.append(event(at(10, day=day), at(12, day=day)))
        history.append(event(at(12, 15, day=day), at(13, 45, day=day)))

    pattern = detect_patterns(history, preferences)[0]

    assert pattern.category == PatternCategory.NO_LUNCH
    assert pattern.data_points == [0.5, 0.5, 0.5]


def test_meeting_overload(preferences) -> None:
    history = [event(at(9, 30 * slot), at(9, 30 * slot + 30)) for slot in range(6)]

    patterns = detect_patterns(history, preferences)

    assert [pattern.category for pattern in patterns] == [PatternCategory.MEETING_OVERLOAD]
    assert patterns[0].data_points == [0.6]
    assert "6.0" in patterns[0].description


def test_after_hours(preferences) -> None:
    history = [event(at(18, day=day), at(19, day=day)) for day in range(2)]

    patterns = detect_patterns(history, preferences)

    assert [pattern.category for pattern in patterns] == [PatternCategory.AFTER_HOURS]
    assert patterns[0].data_points == [1.0, 1.0]


def test_weekend_time_counts_as_after_hours(preferences) -> None:
    # Saturday and Sunday, inside nominal work hours
    history = [event(at(10, day=day), at(11, day=day)) for day in (5, 6)]
    patterns = detect_patterns(history, preferences)
    assert [pattern.category for pattern in patterns] == [PatternCategory.AFTER_HOURS]


def test_rules_emit_in_declaration_order(preferences) -> None:
    history = [event(at(11, 30, day=day), at(14, 30, day=day)) for day in range(3)]
    history += [event(at(19, day=day), at(20, day=day)) for day in range(3)]

    categories = [pattern.category for pattern in detect_patterns(history, preferences)]

    assert categories == [PatternCategory.NO_LUNCH, PatternCategory.AFTER_HOURS]


def test_explicit_window_sets_series_length(preferences) -> None:
    history = [event(at(18, day=day), at(19, day=day)) for day in range(2)]
    window = AnalysisWindow(start=date(2024, 3, 4), days=7)

    patterns = detect_patterns(history, preferences, window=window)

    assert len(patterns[0].data_points) == 7
    assert patterns[0].data_points[2:] == [0.0] * 5


def test_series_values_stay_normalized(preferences) -> None:
    history = []
    for day in range(7):
        history.extend(event(at(7 + hour, day=day), at(8 + hour, day=day)) for hour in range(14))
    for pattern in detect_patterns(history, preferences):
        assert all(0.0 <= value <= 1.0 for value in pattern.data_points)


def test_naive_history_is_read_in_the_preference_timezone(preferences) -> None:
    history = []
    for day in range(4, 8):
        history += [
            event(datetime(2024, 3, day, 9), datetime(2024, 3, day, 10)),
            event(datetime(2024, 3, day, 10, 15), datetime(2024, 3, day, 11)),
        ]

    patterns = detect_patterns(history, preferences)

    assert [pattern.category for pattern in patterns] == [PatternCategory.BACK_TO_BACK]
