from datetime import date

from text_helpers import day_of_month_suffix, format_instance_title, pluralize, summarize_errors, truncate_text


def test_pluralize_singular_and_plural():
    assert pluralize(1, "task") == "1 task"
    assert pluralize(0, "task") == "0 tasks"
    assert pluralize(2, "entry", "entries") == "2 entries"


def test_day_of_month_suffix_handles_teens():
    assert [day_of_month_suffix(d) for d in (1, 2, 3, 4, 11, 12, 13, 21, 22, 31)] == [
        "1st", "2nd", "3rd", "4th", "11th", "12th", "13th", "21st", "22nd", "31st",
    ]


def test_format_instance_title_appends_occurrence_date():
    assert format_instance_title("Standup", date(2024, 1, 8)) == "Standup (2024-01-08)"
    assert format_instance_title("  ", date(2024, 1, 8)) == "Untitled task (2024-01-08)"


def test_truncate_text_marks_cut():
    assert truncate_text("short") == "short"
    cut = truncate_text("x" * 600)
    assert len(cut) == 500
    assert cut.endswith("...")


def test_summarize_errors_is_bounded():
    errors = [{'task_id': i, 'error': 'boom'} for i in range(5)]
    assert summarize_errors(errors) == "0: boom; 1: boom; 2: boom; (+2 more)"
    assert summarize_errors([]) is None
    assert summarize_errors(["plain"]) == "plain"
    assert len(summarize_errors([{'user_id': 1, 'error': 'y' * 1000}])) == 500
