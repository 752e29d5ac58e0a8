# -*- coding: utf-8 -*-
"""
tests/test_streak.py
连续天数：固定 today + 固定时区，结果不依赖运行机器的本地时区
"""
from datetime import date, datetime, timedelta, timezone

from readhub.models import CompletionEvent, StreakState
from readhub.streak import compute_streaks

UTC = timezone.utc
TODAY = date(2024, 5, 10)


def ev(day: date, hour: int = 12, minute: int = 0, url: str = "https://example.com/a") -> CompletionEvent:
    ts = datetime(day.year, day.month, day.day, hour, minute, tzinfo=UTC)
    return CompletionEvent(subject_id=url, finished_at_utc=int(ts.timestamp() * 1000))


def days_back(n: int) -> date:
    return TODAY - timedelta(days=n)


def streaks(events):
    return compute_streaks(events, today=TODAY, tz=UTC)


def test_empty():
    assert streaks([]) == StreakState(0, 0)


def test_only_today():
    assert streaks([ev(TODAY)]) == StreakState(1, 1)


def test_three_consecutive_days():
    events = [ev(TODAY), ev(days_back(1)), ev(days_back(2))]
    assert streaks(events) == StreakState(3, 3)


def test_gap_of_three_breaks_run():
    assert streaks([ev(TODAY), ev(days_back(3))]) == StreakState(1, 1)


def test_same_day_duplicates_collapse():
    twice = [ev(TODAY, 9), ev(TODAY, 23)]
    assert streaks(twice) == streaks([ev(TODAY)])


def test_input_order_does_not_matter():
    events = [ev(days_back(2)), ev(TODAY), ev(days_back(1)), ev(days_back(5))]
    assert streaks(events) == streaks(list(reversed(events))) == StreakState(3, 3)


def test_streak_from_yesterday_still_counts():
    assert streaks([ev(days_back(1)), ev(days_back(2))]) == StreakState(2, 2)


def test_newest_two_days_ago_means_no_current_streak():
    # 今天和昨天都没有：当前连续为 0，哪怕更早有很长的连续
    events = [ev(days_back(n)) for n in range(2, 9)]
    assert streaks(events) == StreakState(0, 7)


def test_longest_run_in_the_past():
    events = [ev(TODAY)] + [ev(days_back(n)) for n in range(10, 14)]
    assert streaks(events) == StreakState(1, 4)


def test_local_date_uses_timezone():
    tokyo = timezone(timedelta(hours=9))
    # UTC 5月9日 20:00 = 东京 5月10日 05:00
    late = ev(days_back(1), hour=20)
    assert compute_streaks([late], today=TODAY, tz=tokyo) == StreakState(1, 1)
    assert compute_streaks([late], today=TODAY, tz=UTC) == StreakState(1, 1)
    # 东京时间下 5月8日 20:00 UTC 是 5月9日 = 昨天
    older = ev(days_back(2), hour=20)
    assert compute_streaks([older], today=TODAY, tz=tokyo) == StreakState(1, 1)
    assert compute_streaks([older], today=TODAY, tz=UTC) == StreakState(0, 1)
