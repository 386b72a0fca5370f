"""
Recurring task generation: materializes task instances from due recurring templates.

A pass is a batch job with per-template isolation. Each template's instance insert and
schedule update commit together; a failure rolls back that template only and is
reported in the result instead of aborting the batch.
"""
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Dict, List, Optional

from flask import current_app

from datetime_utils import day_start, utcnow
from exceptions import NotATemplate, TemplateNotFound
from models import RECURRENCE_ACTIVE, RECURRENCE_ENDED
from recurrence import (
    describe_rule,
    effective_end_date,
    initial_generation_date,
    is_recurrence_ended,
    load_recurrence_rule,
    next_occurrence,
    parse_recurrence_rule,
    rule_to_json,
)
from services.task_store import SqlTaskStore
from services.validation_service import normalize_priority, parse_day_value
from text_helpers import format_instance_title, pluralize


@dataclass
class GenerationResult:
    generated_count: int = 0
    ended_count: int = 0
    errors: List[Dict[str, Any]] = field(default_factory=list)
    message: str = ''

    @property
    def success(self):
        return not self.errors

    def to_dict(self):
        return {
            'success': self.success,
            'generated_count': self.generated_count,
            'ended_count': self.ended_count,
            'errors': list(self.errors),
            'message': self.message,
        }


def _generation_message(generated, errors):
    message = f"Generated {pluralize(generated, 'task instance')}."
    if errors:
        message += f" {pluralize(len(errors), 'error')} occurred."
    return message


def _shift(day_value, offset):
    return day_value + offset if day_value else None


class RecurringTaskGenerator:
    def __init__(self, store=None):
        self.store = store or SqlTaskStore()

    # ---------- due checks ----------
    def is_due(self, template, now):
        """Python mirror of the store's due query, for a single already-loaded template."""
        if not template.is_template() or template.has_ended():
            return False
        if template.next_generation_at is None or template.next_generation_at > now:
            return False
        if template.recurring_end_date and template.recurring_end_date < now.date():
            return False
        return True

    def due_templates(self, now=None):
        return self.store.find_due_templates(now or utcnow())

    def count_pending(self, now=None):
        return self.store.count_due_templates(now or utcnow())

    # ---------- generation ----------
    def generate_all(self, now=None):
        """Generate one instance for every due template; raises StoreUnavailable if none can be listed."""
        now = now or utcnow()
        result = GenerationResult()
        result.ended_count = self.finalize_ended_templates(now)

        templates = self.store.find_due_templates(now)
        current_app.logger.info(f"[Recurring Tasks] Found {len(templates)} due recurring template(s)")

        for template in templates:
            template_id = template.id
            try:
                created, ended = self._generate_instance(template, now)
                self.store.commit()
            except Exception as exc:
                self.store.rollback()
                current_app.logger.error(f"[Recurring Tasks] Error generating instance for task {template_id}: {exc}")
                result.errors.append({'task_id': template_id, 'error': str(exc) or exc.__class__.__name__})
                continue
            if created:
                result.generated_count += 1
            if ended:
                result.ended_count += 1

        result.message = _generation_message(result.generated_count, result.errors)
        if result.success:
            current_app.logger.info(f"[Recurring Tasks] {result.message}")
        else:
            current_app.logger.warning(f"[Recurring Tasks] {result.message}")
        return result

    def generate_for_template(self, template_id, now=None):
        """
        Generate exactly one instance for a single template if it is due.

        Raises TemplateNotFound / NotATemplate; returns False when not due yet or when
        the due occurrence already has an instance (the schedule still advances).
        """
        now = now or utcnow()
        template = self._load_template(template_id)
        if not self.is_due(template, now):
            return False
        try:
            created, _ = self._generate_instance(template, now)
            self.store.commit()
        except Exception:
            self.store.rollback()
            raise
        if created:
            current_app.logger.info(f"[Recurring Tasks] Manually generated instance for task {template_id}")
        return created

    def _load_template(self, template_id):
        template = self.store.get_task(template_id)
        if template is None:
            raise TemplateNotFound(template_id)
        if not template.is_recurring:
            raise NotATemplate(template_id, "is not a recurring task")
        if template.parent_task_id is not None:
            raise NotATemplate(template_id, "is an instance, not a template")
        return template

    def _generate_instance(self, template, now):
        """
        Write the instance and advance the template; returns (created, ended).

        An occurrence that already has an instance is not written again, but the
        schedule still moves past it.
        """
        rule = parse_recurrence_rule(template.recurring_config, template.recurring_pattern)
        occurrence = (template.next_generation_at or now).date()
        if self.store.instance_exists(template.id, occurrence):
            current_app.logger.warning(
                f"[Recurring Tasks] Task {template.id} already has an instance for {occurrence.isoformat()}, skipping insert"
            )
            return False, self._advance(template, rule, now, template.occurrence_count or 0)
        anchor = template.recurring_start_date or template.start_date or occurrence
        offset = occurrence - anchor if occurrence >= anchor else timedelta(0)

        self.store.create_instance({
            'user_id': template.user_id,
            'project_id': template.project_id,
            'title': format_instance_title(template.title, occurrence),
            'description': template.description,
            'priority': template.priority,
            'start_date': _shift(template.start_date, offset),
            'due_date': _shift(template.due_date, offset),
            'parent_task_id': template.id,
            'occurrence_date': occurrence,
        })

        count = (template.occurrence_count or 0) + 1
        ended = self._advance(template, rule, now, count)
        current_app.logger.info(
            f"[Recurring Tasks] Generated instance for task {template.id} ({occurrence.isoformat()}), "
            f"next generation: {template.next_generation_at or 'none (ended)'}"
        )
        return True, ended

    def _advance(self, template, rule, now, count):
        patch = {
            'last_generated_at': now,
            'occurrence_count': count,
            'recurrence_status': RECURRENCE_ACTIVE,
        }
        next_date = next_occurrence(now.date(), rule)
        if next_date is None:
            raise ValueError(f"Could not compute next occurrence for task {template.id}")
        end = effective_end_date(rule, template.recurring_end_date)
        ended = (end is not None and next_date > end) or is_recurrence_ended(rule, count)
        if ended:
            patch['next_generation_at'] = None
            patch['recurrence_status'] = RECURRENCE_ENDED
        else:
            patch['next_generation_at'] = day_start(next_date)
        self.store.update_template(template, patch)
        return ended

    def finalize_ended_templates(self, now=None):
        """Move active templates whose end date has passed to the ended state."""
        today = (now or utcnow()).date()
        expired = self.store.find_expired_templates(today)
        for template in expired:
            self.store.end_template(template)
        if expired:
            self.store.commit()
            current_app.logger.info(f"[Recurring Tasks] Ended {pluralize(len(expired), 'recurring template')} past their end date")
        return len(expired)

    # ---------- template lifecycle ----------
    def create_template(self, user_id, title, pattern, config, description=None, priority=None,
                        project_id=None, start_date=None, due_date=None,
                        recurring_start_date=None, recurring_end_date=None, now=None):
        """Validate the rule once and store a template with its catch-up generation date."""
        now = now or utcnow()
        title = (title or '').strip()
        if not title:
            raise ValueError("title is required")
        if isinstance(config, dict) and pattern and not config.get('pattern'):
            config = dict(config, pattern=pattern)
        rule = parse_recurrence_rule(config, pattern)

        recurring_start = parse_day_value(recurring_start_date) or now.date()
        recurring_end = parse_day_value(recurring_end_date) or rule.end_date
        if recurring_end and recurring_end < recurring_start:
            raise ValueError("recurring_end_date is before recurring_start_date")

        first = initial_generation_date(rule, max(now.date(), recurring_start))
        template = self.store.create_task({
            'user_id': user_id,
            'project_id': project_id,
            'title': title,
            'description': description,
            'priority': normalize_priority(priority),
            'start_date': parse_day_value(start_date),
            'due_date': parse_day_value(due_date),
            'is_recurring': True,
            'recurring_pattern': rule.pattern,
            'recurring_config': rule_to_json(rule),
            'recurring_start_date': recurring_start,
            'recurring_end_date': recurring_end,
            'next_generation_at': day_start(first) if first else None,
            'occurrence_count': 0,
            'recurrence_status': RECURRENCE_ACTIVE,
        })
        self.store.commit()
        current_app.logger.info(f"[Recurring Tasks] Created template {template.id} ({describe_rule(rule)}), first generation {first}")
        return template

    def reset_schedule(self, template_id=None, now=None):
        """
        Recompute next_generation_at with catch-up logic for one template or every active one.
        Templates with an unreadable rule are reported, not raised.
        """
        now = now or utcnow()
        if template_id is not None:
            templates = [self._load_template(template_id)]
        else:
            templates = self.store.find_templates(active_only=True)

        updated = []
        errors = []
        for template in templates:
            rule = load_recurrence_rule(template.recurring_config, template.recurring_pattern)
            if rule is None:
                errors.append({'task_id': template.id, 'error': 'Invalid recurrence rule'})
                continue
            start = template.recurring_start_date or now.date()
            first = initial_generation_date(rule, max(now.date(), start))
            while first is not None and self.store.instance_exists(template.id, first):
                first = next_occurrence(first, rule)
            end = effective_end_date(rule, template.recurring_end_date)
            if first is None or (end and first > end) or is_recurrence_ended(rule, template.occurrence_count):
                self.store.end_template(template)
            else:
                self.store.update_template(template, {
                    'next_generation_at': day_start(first),
                    'recurrence_status': RECURRENCE_ACTIVE,
                })
            updated.append({
                'task_id': template.id,
                'next_generation_at': template.next_generation_at.isoformat() if template.next_generation_at else None,
                'recurrence_status': template.recurrence_status,
            })
        self.store.commit()
        return {'updated': updated, 'errors': errors}

    # ---------- status ----------
    def generation_status(self, template_id, now=None) -> Optional[Dict[str, Any]]:
        now = now or utcnow()
        template = self.store.get_task(template_id)
        if template is None:
            return None
        return self._status_for(template, now)

    def list_generation_status(self, now=None):
        now = now or utcnow()
        return [self._status_for(t, now) for t in self.store.find_templates()]

    def _status_for(self, template, now):
        rule = load_recurrence_rule(template.recurring_config, template.recurring_pattern)
        has_ended = template.has_ended() or (
            rule is not None and is_recurrence_ended(rule, template.occurrence_count, template.recurring_end_date, now)
        )
        return {
            'task_id': template.id,
            'title': template.title,
            'is_recurring': bool(template.is_recurring),
            'description': describe_rule(rule) if rule else None,
            'next_generation_at': template.next_generation_at.isoformat() if template.next_generation_at else None,
            'last_generated_at': template.last_generated_at.isoformat() if template.last_generated_at else None,
            'occurrence_count': template.occurrence_count or 0,
            'has_ended': has_ended,
            'due_now': self.is_due(template, now),
        }

    def instances_for(self, template_id):
        return self.store.find_instances_by_template(template_id, newest_first=True)
