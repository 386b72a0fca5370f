"""
Administrative entry points for recurring generation.

Every action returns a structured dict (counts, per-item detail, errors). Only a store
that cannot be queried at all raises.
"""
from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from exceptions import InvalidRecurrenceRule, NotATemplate, TemplateNotFound
from services.duplicate_service import cleanup_duplicate_instances
from services.job_state_store import SqlJobStateStore
from services.recurring_generator import RecurringTaskGenerator
from text_helpers import pluralize

ACTION_GENERATE_ALL = 'generate-all'
ACTION_GENERATE_FOR_TEMPLATE = 'generate-for-template'
ACTION_COUNT_PENDING = 'count-pending'
ACTION_LIST_STATUS = 'list-status'
ACTION_RESET_SCHEDULE = 'reset-schedule'
ACTION_CLEANUP_DUPLICATES = 'cleanup-duplicates'

ACTIONS = (
    ACTION_GENERATE_ALL,
    ACTION_GENERATE_FOR_TEMPLATE,
    ACTION_COUNT_PENDING,
    ACTION_LIST_STATUS,
    ACTION_RESET_SCHEDULE,
    ACTION_CLEANUP_DUPLICATES,
)


def _error(action, message, code, **extra):
    payload = {'success': False, 'action': action, 'error': message, 'code': code}
    payload.update(extra)
    return payload


def run_generation_action(action=None, template_id=None, now=None, generator=None):
    generator = generator or RecurringTaskGenerator()
    action = (action or ACTION_GENERATE_ALL).strip().lower()
    current_app.logger.info(f"[Recurring Tasks] Action {action}" + (f" for task {template_id}" if template_id else ''))

    if action == ACTION_GENERATE_ALL:
        result = generator.generate_all(now).to_dict()
        result['action'] = action
        return result

    if action == ACTION_GENERATE_FOR_TEMPLATE:
        if template_id is None:
            return _error(action, 'template_id is required', 'MISSING_TEMPLATE_ID')
        try:
            generated = generator.generate_for_template(template_id, now)
        except TemplateNotFound as exc:
            return _error(action, str(exc), 'NOT_FOUND', template_id=template_id)
        except (NotATemplate, InvalidRecurrenceRule, ValueError, SQLAlchemyError) as exc:
            return _error(action, str(exc), 'GENERATION_ERROR', template_id=template_id)
        return {
            'success': True,
            'action': action,
            'template_id': template_id,
            'generated': generated,
            'message': (f"Generated new instance for task {template_id}" if generated
                        else f"Task {template_id} is not due for generation yet"),
        }

    if action == ACTION_COUNT_PENDING:
        pending = generator.count_pending(now)
        return {
            'success': True,
            'action': action,
            'pending_count': pending,
            'message': f"{pluralize(pending, 'recurring task')} pending generation",
        }

    if action == ACTION_LIST_STATUS:
        templates = generator.list_generation_status(now)
        return {
            'success': True,
            'action': action,
            'pending_count': sum(1 for t in templates if t['due_now']),
            'templates': templates,
            'jobs': [state.to_dict() for state in SqlJobStateStore().list_job_states()],
        }

    if action == ACTION_RESET_SCHEDULE:
        try:
            result = generator.reset_schedule(template_id, now)
        except TemplateNotFound as exc:
            return _error(action, str(exc), 'NOT_FOUND', template_id=template_id)
        except NotATemplate as exc:
            return _error(action, str(exc), 'GENERATION_ERROR', template_id=template_id)
        return {
            'success': not result['errors'],
            'action': action,
            'updated': result['updated'],
            'errors': result['errors'],
            'message': f"Rescheduled {pluralize(len(result['updated']), 'template')}.",
        }

    if action == ACTION_CLEANUP_DUPLICATES:
        result = cleanup_duplicate_instances(template_id=template_id)
        result.update({'success': True, 'action': action})
        return result

    return _error(action, f"Invalid action: {action}", 'INVALID_ACTION', valid_actions=list(ACTIONS))


def generation_status_report(now=None, generator=None):
    generator = generator or RecurringTaskGenerator()
    return {'pending_count': generator.count_pending(now), 'ready': True}
