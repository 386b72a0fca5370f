"""Errors raised by the recurring task engine."""


class RecurringTaskError(Exception):
    """Base class for recurring task failures."""


class InvalidRecurrenceRule(RecurringTaskError, ValueError):
    """The stored or submitted recurrence rule cannot be interpreted."""


class TemplateNotFound(RecurringTaskError, LookupError):
    def __init__(self, template_id):
        super().__init__(f"Task {template_id} not found")
        self.template_id = template_id


class NotATemplate(RecurringTaskError, ValueError):
    """The task exists but is an instance or is not recurring."""

    def __init__(self, template_id, reason):
        super().__init__(f"Task {template_id} {reason}")
        self.template_id = template_id


class StoreUnavailable(RecurringTaskError):
    """The task store could not be queried at all."""


class JobTimeout(RecurringTaskError):
    """A background job payload did not finish within its time budget."""
