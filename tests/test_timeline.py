"""Tests for timeline ordering, duration derivation and category breakdown."""

from datetime import datetime

import pytest

from daylog.errors import StaleReferenceError
from daylog.events import SPECIAL_CATEGORY, TaskEvent
from daylog.timeline import Timeline, build_timeline, last_event_end_minutes

PAST_DAY = "2025-01-20"
TODAY = "2025-01-27"
FUTURE_DAY = "2025-02-03"
NOW = datetime(2025, 1, 27, 10, 30)


def make_event(
    event_id: int | None,
    start_time: str,
    *,
    day: str = PAST_DAY,
    task_type: str = "normal",
    category_name: str = "Development",
    task_name: str = "Work",
) -> TaskEvent:
    """Helper to create a TaskEvent for testing."""
    if task_type != "normal":
        category_name = SPECIAL_CATEGORY
    return TaskEvent(
        id=event_id,
        category_name=category_name,
        task_name=task_name,
        start_time=start_time,
        date=day,
        task_type=task_type,
    )


class TestBuildTimeline:
    """Tests for ordering a day's events."""

    def test_sorted_by_start_time(self):
        events = [make_event(1, "11:00"), make_event(2, "09:00"), make_event(3, "10:15")]
        assert [e.id for e in build_timeline(events)] == [2, 3, 1]

    def test_blank_start_times_dropped(self):
        events = [make_event(1, "09:00"), make_event(2, ""), make_event(3, "   ")]
        assert [e.id for e in build_timeline(events)] == [1]

    def test_unparseable_last_and_stable(self):
        """Unparseable times sort last; ties and unparseables keep input order."""
        events = [
            make_event(1, "10:00"),
            make_event(2, "bad"),
            make_event(3, "09:00"),
            make_event(4, "25:00"),
            make_event(5, "09:00"),
        ]
        assert [e.id for e in build_timeline(events)] == [3, 5, 1, 2, 4]

    def test_empty_input(self):
        assert build_timeline([]) == []


class TestSuccessors:
    def test_last_event_has_no_successor(self):
        first, last = make_event(1, "09:00"), make_event(2, "10:00")
        timeline = Timeline([last, first])
        assert timeline.successor_of(first).id == 2
        assert timeline.successor_of(last) is None

    def test_unknown_event_is_stale(self):
        timeline = Timeline([make_event(1, "09:00")])
        with pytest.raises(StaleReferenceError):
            timeline.successor_of(make_event(99, "09:00"))

    def test_equal_copy_resolves_like_original(self):
        """Lookup is by ID, not object identity."""
        event = make_event(1, "09:00")
        timeline = Timeline([event, make_event(2, "10:30")])
        copy = event.model_copy()
        assert copy is not event
        assert timeline.calculate_duration(copy, now=NOW) == "1h 30m"

    def test_contains(self):
        event = make_event(1, "09:00")
        timeline = Timeline([event])
        assert event in timeline
        assert make_event(2, "09:00") not in timeline


class TestCalculateDuration:
    """Tests for the per-event duration rules."""

    def test_duration_to_next_event(self):
        first = make_event(1, "09:00")
        timeline = Timeline([first, make_event(2, "10:30")])
        assert timeline.calculate_duration(first, now=NOW) == "1h 30m"

    def test_same_start_time_is_zero(self):
        first = make_event(1, "09:00")
        timeline = Timeline([first, make_event(2, "09:00")])
        assert timeline.calculate_duration(first, now=NOW) == "0m"

    def test_end_marker_has_no_duration(self):
        end = make_event(2, "17:00", task_type="end")
        timeline = Timeline([make_event(1, "09:00"), end])
        assert timeline.calculate_duration(end, now=NOW) == "-"

    def test_pause_has_duration(self):
        pause = make_event(2, "12:00", task_type="pause")
        timeline = Timeline([make_event(1, "09:00"), pause, make_event(3, "12:45")])
        assert timeline.calculate_duration(pause, now=NOW) == "45m"

    def test_event_not_in_timeline(self):
        timeline = Timeline([make_event(1, "09:00")])
        assert timeline.calculate_duration(make_event(7, "09:00"), now=NOW) == "-"

    def test_event_without_id(self):
        event = make_event(None, "09:00")
        timeline = Timeline([event])
        assert timeline.calculate_duration(event, now=NOW) == "-"

    def test_own_time_unparseable(self):
        broken = make_event(2, "noon")
        timeline = Timeline([make_event(1, "09:00"), broken])
        assert timeline.calculate_duration(broken, now=NOW) == "-"

    def test_successor_time_unparseable(self):
        first = make_event(1, "09:00")
        timeline = Timeline([first, make_event(2, "noon")])
        assert timeline.calculate_duration(first, now=NOW) == "-"

    def test_last_event_on_past_day_runs_to_midnight(self):
        event = make_event(1, "09:00", day=PAST_DAY)
        timeline = Timeline([event])
        assert timeline.calculate_duration(event, now=NOW) == "15h 0m"

    def test_last_event_today_runs_to_now(self):
        event = make_event(1, "09:00", day=TODAY)
        timeline = Timeline([event])
        assert timeline.calculate_duration(event, now=NOW) == "1h 30m"

    def test_last_event_today_in_future_is_zero(self):
        """A later-today start never yields a negative duration."""
        event = make_event(1, "09:00", day=TODAY)
        timeline = Timeline([event])
        assert timeline.calculate_duration(event, now=datetime(2025, 1, 27, 8, 0)) == "0m"

    def test_last_event_on_future_day_is_zero(self):
        event = make_event(1, "09:00", day=FUTURE_DAY)
        timeline = Timeline([event])
        assert timeline.calculate_duration(event, now=NOW) == "0m"

    def test_last_event_with_unreadable_date(self):
        event = make_event(1, "09:00", day="someday")
        timeline = Timeline([event])
        assert timeline.calculate_duration(event, now=NOW) == "-"

    def test_now_defaults_to_current_time(self):
        event = make_event(1, "09:00", day="2000-01-01")
        timeline = Timeline([event])
        assert timeline.calculate_duration(event) == "15h 0m"

    def test_repeated_calls_are_stable(self):
        events = [make_event(1, "09:00"), make_event(2, "10:00"), make_event(3, "bad")]
        timeline = Timeline(events)
        first = [timeline.calculate_duration(e, now=NOW) for e in events]
        second = [timeline.calculate_duration(e, now=NOW) for e in events]
        assert first == second


class TestLastEventEndMinutes:
    def test_past(self):
        assert last_event_end_minutes(PAST_DAY, 540, NOW) == 1440

    def test_today(self):
        assert last_event_end_minutes(TODAY, 540, NOW) == 630

    def test_future(self):
        assert last_event_end_minutes(FUTURE_DAY, 540, NOW) == 540

    def test_invalid_date(self):
        assert last_event_end_minutes("", 540, NOW) is None


class TestTotalMinutesTracked:
    def test_only_normal_events_counted(self):
        events = [
            make_event(1, "09:00"),
            make_event(2, "12:00", task_type="pause"),
            make_event(3, "13:00"),
            make_event(4, "17:00", task_type="end"),
        ]
        # 09:00-12:00 and 13:00-17:00; the pause hour is excluded
        assert Timeline(events).total_minutes_tracked(now=NOW) == 420

    def test_unresolvable_events_skipped(self):
        events = [make_event(1, "09:00"), make_event(2, "bad")]
        assert Timeline(events).total_minutes_tracked(now=NOW) == 0

    def test_open_last_event_counted(self):
        events = [make_event(1, "23:00")]
        assert Timeline(events).total_minutes_tracked(now=NOW) == 60

    def test_empty(self):
        assert Timeline([]).total_minutes_tracked(now=NOW) == 0


class TestCategoryBreakdown:
    def test_sums_and_percentages(self):
        events = [
            make_event(1, "09:00", category_name="Development"),
            make_event(2, "10:00", category_name="Meeting"),
            make_event(3, "11:00", category_name="Development"),
            make_event(4, "12:00", task_type="end"),
        ]
        breakdown = Timeline(events).category_breakdown(now=NOW)

        assert [(s.category_name, s.minutes) for s in breakdown] == [
            ("Development", 120),
            ("Meeting", 60),
        ]
        assert breakdown[0].percentage == pytest.approx(200 / 3)
        assert breakdown[1].percentage == pytest.approx(100 / 3)
        assert sum(s.percentage for s in breakdown) == pytest.approx(100)

    def test_ties_sorted_by_name(self):
        events = [
            make_event(1, "09:00", category_name="Zeta"),
            make_event(2, "10:00", category_name="Alpha"),
            make_event(3, "11:00", task_type="end"),
        ]
        breakdown = Timeline(events).category_breakdown(now=NOW)
        assert [s.category_name for s in breakdown] == ["Alpha", "Zeta"]

    def test_pause_not_counted(self):
        events = [
            make_event(1, "09:00", category_name="Development"),
            make_event(2, "10:00", task_type="pause"),
            make_event(3, "11:00", task_type="end"),
        ]
        breakdown = Timeline(events).category_breakdown(now=NOW)
        assert [(s.category_name, s.minutes) for s in breakdown] == [("Development", 60)]
        assert breakdown[0].percentage == pytest.approx(100)

    def test_zero_total_gives_zero_percentages(self):
        events = [make_event(1, "09:00", day=FUTURE_DAY)]
        breakdown = Timeline(events).category_breakdown(now=NOW)
        assert len(breakdown) == 1
        assert breakdown[0].minutes == 0
        assert breakdown[0].percentage == 0

    def test_no_eligible_events(self):
        events = [make_event(1, "17:00", task_type="end")]
        assert Timeline(events).category_breakdown(now=NOW) == []
        assert Timeline([]).category_breakdown(now=NOW) == []
