from datetime import date, timedelta

import pytest

from exceptions import InvalidRecurrenceRule
from recurrence import (
    CustomRule,
    DailyRule,
    MonthlyRule,
    WeeklyRule,
    add_months,
    describe_rule,
    effective_end_date,
    initial_generation_date,
    is_recurrence_ended,
    load_recurrence_rule,
    next_occurrence,
    parse_recurrence_rule,
    rule_to_json,
    sunday_weekday,
)

MONDAY = date(2024, 1, 1)
TUESDAY = date(2024, 1, 2)
WEDNESDAY = date(2024, 1, 3)
SATURDAY = date(2024, 1, 6)
SUNDAY = date(2024, 1, 7)


def test_sunday_weekday_convention():
    assert sunday_weekday(SUNDAY) == 0
    assert sunday_weekday(MONDAY) == 1
    assert sunday_weekday(SATURDAY) == 6


@pytest.mark.parametrize("interval", [1, 2, 10, 45])
def test_daily_adds_interval_days(interval):
    assert next_occurrence(MONDAY, DailyRule(interval=interval)) == MONDAY + timedelta(days=interval)


def test_weekly_without_days_adds_whole_weeks():
    assert next_occurrence(MONDAY, WeeklyRule()) == date(2024, 1, 8)
    assert next_occurrence(MONDAY, WeeklyRule(interval=2)) == date(2024, 1, 15)


def test_weekly_result_lands_on_a_listed_weekday():
    rule = WeeklyRule(days_of_week=(1, 3, 5))
    assert next_occurrence(MONDAY, rule) == date(2024, 1, 8)
    assert next_occurrence(WEDNESDAY, rule) == date(2024, 1, 10)
    # Tue + 7 is a Tuesday, snapped forward to Wednesday
    assert next_occurrence(TUESDAY, rule) == date(2024, 1, 10)


def test_weekly_snap_wraps_into_next_week():
    rule = WeeklyRule(days_of_week=(1, 3))
    assert next_occurrence(SATURDAY, rule) == date(2024, 1, 15)


def test_monthly_clamps_to_short_months():
    rule = MonthlyRule(day_of_month=31)
    assert next_occurrence(date(2024, 3, 31), rule) == date(2024, 4, 30)
    assert next_occurrence(date(2024, 1, 31), rule) == date(2024, 2, 29)
    # the configured day comes back once the month is long enough
    assert next_occurrence(date(2024, 2, 29), rule) == date(2024, 3, 31)


def test_monthly_without_day_keeps_current_day():
    assert next_occurrence(date(2024, 1, 31), MonthlyRule()) == date(2024, 2, 29)
    assert next_occurrence(date(2024, 11, 15), MonthlyRule(interval=3)) == date(2025, 2, 15)


def test_add_months_crosses_year_boundary():
    assert add_months(date(2024, 12, 10), 1) == date(2025, 1, 10)
    assert add_months(date(2023, 1, 30), 1, 30) == date(2023, 2, 28)


def test_custom_units():
    assert next_occurrence(MONDAY, CustomRule(interval=3, unit='DAILY')) == date(2024, 1, 4)
    assert next_occurrence(MONDAY, CustomRule(interval=2, unit='WEEKLY')) == date(2024, 1, 15)
    assert next_occurrence(date(2024, 12, 15), CustomRule(interval=2, unit='MONTHLY')) == date(2025, 2, 15)
    assert next_occurrence(date(2024, 2, 29), CustomRule(unit='YEARLY')) == date(2025, 2, 28)


def test_next_occurrence_without_rule_is_none():
    assert next_occurrence(MONDAY, None) is None
    assert next_occurrence(None, DailyRule()) is None


def test_initial_generation_daily_is_today():
    assert initial_generation_date(DailyRule(interval=5), TUESDAY) == TUESDAY


def test_initial_generation_weekly_waits_for_slot_later_this_week():
    assert initial_generation_date(WeeklyRule(days_of_week=(1, 3, 5)), TUESDAY) == WEDNESDAY
    assert initial_generation_date(WeeklyRule(days_of_week=(1, 3, 5)), SUNDAY) == date(2024, 1, 8)


def test_initial_generation_weekly_today_is_listed():
    assert initial_generation_date(WeeklyRule(days_of_week=(1, 3, 5)), WEDNESDAY) == WEDNESDAY


def test_initial_generation_weekly_catches_up_when_all_slots_passed():
    assert initial_generation_date(WeeklyRule(days_of_week=(1,)), TUESDAY) == TUESDAY
    assert initial_generation_date(WeeklyRule(days_of_week=(1, 3)), SATURDAY) == SATURDAY


def test_initial_generation_monthly():
    today = date(2024, 1, 10)
    assert initial_generation_date(MonthlyRule(day_of_month=15), today) == date(2024, 1, 15)
    assert initial_generation_date(MonthlyRule(day_of_month=10), today) == today
    assert initial_generation_date(MonthlyRule(day_of_month=5), today) == date(2024, 2, 5)
    assert initial_generation_date(MonthlyRule(day_of_month=31), date(2024, 4, 30)) == date(2024, 4, 30)


def test_initial_generation_falls_back_to_next_occurrence():
    assert initial_generation_date(WeeklyRule(), TUESDAY) == date(2024, 1, 9)
    assert initial_generation_date(CustomRule(unit='MONTHLY'), TUESDAY) == date(2024, 2, 2)


def test_parse_weekly_rule_from_json():
    rule = parse_recurrence_rule('{"pattern": "weekly", "interval": 2, "daysOfWeek": [5, 1, 3, 3]}')
    assert rule == WeeklyRule(interval=2, days_of_week=(1, 3, 5))


def test_parse_uses_pattern_column_when_config_has_none():
    assert parse_recurrence_rule({'interval': 2}, 'daily') == DailyRule(interval=2)


def test_parse_custom_accepts_either_unit_key():
    assert parse_recurrence_rule({'pattern': 'CUSTOM', 'customType': 'yearly'}).unit == 'YEARLY'
    assert parse_recurrence_rule({'pattern': 'CUSTOM', 'customUnit': 'MONTHLY'}).unit == 'MONTHLY'


def test_parse_end_conditions():
    rule = parse_recurrence_rule({'pattern': 'DAILY', 'endAfterOccurrences': 3, 'endDate': '2024-02-01'})
    assert rule.end_after_occurrences == 3
    assert rule.end_date == date(2024, 2, 1)


@pytest.mark.parametrize("raw", [
    None,
    "",
    "not json",
    "[1, 2]",
    {'pattern': 'HOURLY'},
    {'pattern': 'DAILY', 'interval': 0},
    {'pattern': 'DAILY', 'interval': 'often'},
    {'pattern': 'WEEKLY', 'daysOfWeek': [1, 7]},
    {'pattern': 'MONTHLY', 'dayOfMonth': 32},
    {'pattern': 'CUSTOM', 'customType': 'HOURLY'},
    {'pattern': 'DAILY', 'endDate': 'soon'},
    {'pattern': 'DAILY', 'endAfterOccurrences': -1},
])
def test_parse_rejects_malformed_rules(raw):
    with pytest.raises(InvalidRecurrenceRule):
        parse_recurrence_rule(raw)
    assert load_recurrence_rule(raw) is None


def test_stored_json_parses_back_to_same_rule():
    rule = MonthlyRule(interval=2, day_of_month=15, end_after_occurrences=6)
    assert parse_recurrence_rule(rule_to_json(rule)) == rule


def test_effective_end_date_is_the_earlier_one():
    rule = DailyRule(end_date=date(2024, 3, 1))
    assert effective_end_date(rule, date(2024, 2, 1)) == date(2024, 2, 1)
    assert effective_end_date(rule, None) == date(2024, 3, 1)
    assert effective_end_date(DailyRule(), None) is None


def test_is_recurrence_ended():
    capped = DailyRule(end_after_occurrences=3)
    assert is_recurrence_ended(capped, 2) is False
    assert is_recurrence_ended(capped, 3) is True
    dated = DailyRule(end_date=date(2024, 1, 5))
    assert is_recurrence_ended(dated, today=date(2024, 1, 5)) is False
    assert is_recurrence_ended(dated, today=date(2024, 1, 6)) is True


def test_describe_rule():
    assert describe_rule(DailyRule()) == "Every day"
    assert describe_rule(DailyRule(interval=3)) == "Every 3 days"
    assert describe_rule(WeeklyRule(days_of_week=(1, 3, 5))) == "Every week on Mon, Wed, Fri"
    assert describe_rule(WeeklyRule(interval=2, days_of_week=(1,))) == "Every 2 weeks on Mon"
    assert describe_rule(MonthlyRule(day_of_month=15)) == "Every month on the 15th"
    assert describe_rule(MonthlyRule(interval=2, day_of_month=1)) == "Every 2 months on the 1st"
    assert describe_rule(CustomRule(interval=2, unit='WEEKLY')) == "Every 2 weeks"
    assert describe_rule(CustomRule(unit='YEARLY')) == "Every year"
