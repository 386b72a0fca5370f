"""
Recurrence rules for recurring task templates and the date arithmetic behind them.

Rules are parsed and validated once (parse_recurrence_rule) into one of four
frozen variants; the calculators below never re-validate. Weekdays use the stored
convention 0 = Sunday ... 6 = Saturday.
"""
import calendar
import json
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Optional, Tuple

from exceptions import InvalidRecurrenceRule
from services.validation_service import parse_day_value, parse_days_of_week, parse_int
from text_helpers import day_of_month_suffix

PATTERN_DAILY = 'DAILY'
PATTERN_WEEKLY = 'WEEKLY'
PATTERN_MONTHLY = 'MONTHLY'
PATTERN_CUSTOM = 'CUSTOM'
PATTERNS = (PATTERN_DAILY, PATTERN_WEEKLY, PATTERN_MONTHLY, PATTERN_CUSTOM)

UNIT_DAILY = 'DAILY'
UNIT_WEEKLY = 'WEEKLY'
UNIT_MONTHLY = 'MONTHLY'
UNIT_YEARLY = 'YEARLY'
CUSTOM_UNITS = (UNIT_DAILY, UNIT_WEEKLY, UNIT_MONTHLY, UNIT_YEARLY)

PATTERN_LABELS = {
    PATTERN_DAILY: 'Daily',
    PATTERN_WEEKLY: 'Weekly',
    PATTERN_MONTHLY: 'Monthly',
    PATTERN_CUSTOM: 'Custom',
}
WEEKDAY_LABELS = ['Sun', 'Mon', 'Tue', 'Wed', 'Thu', 'Fri', 'Sat']
_UNIT_NOUNS = {UNIT_DAILY: 'day', UNIT_WEEKLY: 'week', UNIT_MONTHLY: 'month', UNIT_YEARLY: 'year'}


@dataclass(frozen=True)
class RecurrenceRule:
    interval: int = 1
    end_after_occurrences: Optional[int] = None
    end_date: Optional[date] = None

    pattern = None

    def to_config(self):
        config = {'pattern': self.pattern, 'interval': self.interval}
        if self.end_after_occurrences:
            config['endAfterOccurrences'] = self.end_after_occurrences
        if self.end_date:
            config['endDate'] = self.end_date.isoformat()
        return config


@dataclass(frozen=True)
class DailyRule(RecurrenceRule):
    pattern = PATTERN_DAILY


@dataclass(frozen=True)
class WeeklyRule(RecurrenceRule):
    days_of_week: Tuple[int, ...] = ()

    pattern = PATTERN_WEEKLY

    def to_config(self):
        config = super().to_config()
        if self.days_of_week:
            config['daysOfWeek'] = list(self.days_of_week)
        return config


@dataclass(frozen=True)
class MonthlyRule(RecurrenceRule):
    day_of_month: Optional[int] = None

    pattern = PATTERN_MONTHLY

    def to_config(self):
        config = super().to_config()
        if self.day_of_month:
            config['dayOfMonth'] = self.day_of_month
        return config


@dataclass(frozen=True)
class CustomRule(RecurrenceRule):
    unit: str = UNIT_DAILY

    pattern = PATTERN_CUSTOM

    def to_config(self):
        config = super().to_config()
        config['customType'] = self.unit
        return config


def _positive_int(raw, field, required=False):
    if raw is None:
        if required:
            raise InvalidRecurrenceRule(f"{field} is required")
        return None
    number = parse_int(raw, minimum=1)
    if number is None:
        raise InvalidRecurrenceRule(f"{field} must be a positive integer, got {raw!r}")
    return number


def parse_recurrence_rule(raw, pattern=None):
    """
    Build a rule from a config dict or its JSON text.

    `pattern` is the template's pattern column, used when the config itself does
    not name one. Raises InvalidRecurrenceRule for anything malformed.
    """
    if isinstance(raw, RecurrenceRule):
        return raw
    if raw is None or raw == '':
        raise InvalidRecurrenceRule("Recurrence rule is missing")
    if isinstance(raw, (str, bytes)):
        try:
            raw = json.loads(raw)
        except ValueError as exc:
            raise InvalidRecurrenceRule(f"Recurrence rule is not valid JSON: {exc}") from exc
    if not isinstance(raw, dict):
        raise InvalidRecurrenceRule(f"Recurrence rule must be an object, got {type(raw).__name__}")

    kind = str(raw.get('pattern') or pattern or '').strip().upper()
    if kind not in PATTERNS:
        raise InvalidRecurrenceRule(f"Unknown recurrence pattern: {kind or None!r}")

    interval = _positive_int(raw.get('interval', 1), 'interval', required=True)
    end_after = _positive_int(raw.get('endAfterOccurrences'), 'endAfterOccurrences')
    end_date = None
    if raw.get('endDate'):
        end_date = parse_day_value(raw.get('endDate'))
        if end_date is None:
            raise InvalidRecurrenceRule(f"endDate must be YYYY-MM-DD, got {raw.get('endDate')!r}")
    common = {'interval': interval, 'end_after_occurrences': end_after, 'end_date': end_date}

    if kind == PATTERN_DAILY:
        return DailyRule(**common)
    if kind == PATTERN_WEEKLY:
        try:
            days = parse_days_of_week(raw.get('daysOfWeek'), strict=True)
        except ValueError as exc:
            raise InvalidRecurrenceRule(str(exc)) from exc
        return WeeklyRule(days_of_week=tuple(days), **common)
    if kind == PATTERN_MONTHLY:
        day_of_month = None
        if raw.get('dayOfMonth') is not None:
            day_of_month = parse_int(raw.get('dayOfMonth'), minimum=1, maximum=31)
            if day_of_month is None:
                raise InvalidRecurrenceRule(f"dayOfMonth must be 1-31, got {raw.get('dayOfMonth')!r}")
        return MonthlyRule(day_of_month=day_of_month, **common)

    unit = str(raw.get('customType') or raw.get('customUnit') or UNIT_DAILY).strip().upper()
    if unit not in CUSTOM_UNITS:
        raise InvalidRecurrenceRule(f"Unknown custom recurrence unit: {unit!r}")
    return CustomRule(unit=unit, **common)


def load_recurrence_rule(raw, pattern=None):
    """Lenient variant of parse_recurrence_rule: None instead of an exception."""
    try:
        return parse_recurrence_rule(raw, pattern)
    except InvalidRecurrenceRule:
        return None


def rule_to_json(rule):
    return json.dumps(rule.to_config(), sort_keys=True)


def sunday_weekday(day_value):
    return (day_value.weekday() + 1) % 7


def _as_date(value):
    if isinstance(value, datetime):
        return value.date()
    return value


def add_months(day_value, months, day_of_month=None):
    """Shift by whole months, clamping the day to the target month's length."""
    month_index = day_value.month - 1 + months
    year = day_value.year + month_index // 12
    month = month_index % 12 + 1
    _, last_dom = calendar.monthrange(year, month)
    return date(year, month, min(day_of_month or day_value.day, last_dom))


def add_years(day_value, years):
    year = day_value.year + years
    _, last_dom = calendar.monthrange(year, day_value.month)
    return date(year, day_value.month, min(day_value.day, last_dom))


def _snap_to_weekday(day_value, days_of_week):
    current = sunday_weekday(day_value)
    for day in days_of_week:
        if day >= current:
            return day_value + timedelta(days=day - current)
    return day_value + timedelta(days=7 - current + days_of_week[0])


def next_occurrence(last_date, rule):
    """Date of the occurrence after `last_date`, or None for a rule we cannot schedule."""
    last_date = _as_date(last_date)
    if last_date is None or not isinstance(rule, RecurrenceRule):
        return None

    if isinstance(rule, DailyRule):
        return last_date + timedelta(days=rule.interval)
    if isinstance(rule, WeeklyRule):
        next_date = last_date + timedelta(days=rule.interval * 7)
        if rule.days_of_week:
            next_date = _snap_to_weekday(next_date, rule.days_of_week)
        return next_date
    if isinstance(rule, MonthlyRule):
        return add_months(last_date, rule.interval, rule.day_of_month)
    if isinstance(rule, CustomRule):
        if rule.unit == UNIT_DAILY:
            return last_date + timedelta(days=rule.interval)
        if rule.unit == UNIT_WEEKLY:
            return last_date + timedelta(days=rule.interval * 7)
        if rule.unit == UNIT_MONTHLY:
            return add_months(last_date, rule.interval)
        if rule.unit == UNIT_YEARLY:
            return add_years(last_date, rule.interval)
    return None


def initial_generation_date(rule, today):
    """
    First generation date for a freshly created template.

    A slot that already passed in the current period makes the template due today
    instead of skipping to the next cycle; weekly rules with a slot still ahead this
    week wait for it.
    """
    today = _as_date(today)
    if isinstance(rule, DailyRule):
        return today

    if isinstance(rule, WeeklyRule) and rule.days_of_week:
        current = sunday_weekday(today)
        if current in rule.days_of_week:
            return today
        later = [d for d in rule.days_of_week if d > current]
        if later:
            return today + timedelta(days=later[0] - current)
        # every slot this week has passed
        return today

    if isinstance(rule, MonthlyRule) and rule.day_of_month:
        if rule.day_of_month >= today.day:
            _, last_dom = calendar.monthrange(today.year, today.month)
            return today.replace(day=min(rule.day_of_month, last_dom))
        return add_months(today, 1, rule.day_of_month)

    return next_occurrence(today, rule)


def effective_end_date(rule, end_date=None):
    """The earlier of the template's end column and the rule's own endDate."""
    candidates = [d for d in (_as_date(end_date), getattr(rule, 'end_date', None)) if d]
    return min(candidates) if candidates else None


def is_recurrence_ended(rule, occurrence_count=0, end_date=None, today=None):
    end = effective_end_date(rule, end_date)
    if end and today and _as_date(today) > end:
        return True
    cap = getattr(rule, 'end_after_occurrences', None)
    return bool(cap and (occurrence_count or 0) >= cap)


def pattern_label(pattern):
    return PATTERN_LABELS.get(str(pattern or '').upper(), 'Custom')


def describe_rule(rule):
    """Readable summary, e.g. 'Every 2 weeks on Mon, Wed'."""
    interval = rule.interval
    if isinstance(rule, DailyRule):
        return "Every day" if interval == 1 else f"Every {interval} days"
    if isinstance(rule, WeeklyRule):
        days = ''
        if rule.days_of_week:
            days = ' on ' + ', '.join(WEEKDAY_LABELS[d] for d in rule.days_of_week)
        return f"Every week{days}" if interval == 1 else f"Every {interval} weeks{days}"
    if isinstance(rule, MonthlyRule):
        day = day_of_month_suffix(rule.day_of_month or 1)
        if interval == 1:
            return f"Every month on the {day}"
        return f"Every {interval} months on the {day}"
    if isinstance(rule, CustomRule):
        noun = _UNIT_NOUNS.get(rule.unit, 'day')
        return f"Every {noun}" if interval == 1 else f"Every {interval} {noun}s"
    return pattern_label(getattr(rule, 'pattern', None))
