ERROR_TEXT_MAX_CHARS = 500


def pluralize(count, word, plural=None):
    if count == 1:
        return f"{count} {word}"
    return f"{count} {plural or word + 's'}"


def day_of_month_suffix(day):
    """Return 1st, 2nd, 3rd, 4th ... 11th, 12th, 13th, 21st."""
    if 11 <= day % 100 <= 13:
        return f"{day}th"
    suffix = {1: "st", 2: "nd", 3: "rd"}.get(day % 10, "th")
    return f"{day}{suffix}"


def format_instance_title(title, occurrence_date):
    """Instance titles carry the occurrence date so copies stay distinguishable."""
    base = (title or "").strip() or "Untitled task"
    return f"{base} ({occurrence_date.isoformat()})"


def truncate_text(text, max_chars=ERROR_TEXT_MAX_CHARS):
    value = str(text or "")
    if len(value) <= max_chars:
        return value
    if max_chars <= 3:
        return value[:max_chars]
    return value[: max_chars - 3].rstrip() + "..."


def summarize_errors(errors, limit=3, max_chars=ERROR_TEXT_MAX_CHARS):
    """
    Collapse a list of error entries into one bounded line for job state.

    Entries may be plain strings or dicts with 'error' and an id key
    ('task_id' / 'user_id').
    """
    if not errors:
        return None
    parts = []
    for entry in errors[:limit]:
        if isinstance(entry, dict):
            ident = entry.get("task_id", entry.get("user_id"))
            message = entry.get("error") or "Unknown error"
            parts.append(f"{ident}: {message}" if ident is not None else message)
        else:
            parts.append(str(entry))
    remaining = len(errors) - limit
    if remaining > 0:
        parts.append(f"(+{remaining} more)")
    return truncate_text("; ".join(parts), max_chars)
