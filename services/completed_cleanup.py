"""
Completed task cleanup.

Deletes completed tasks older than the owner's retention period. Recurring templates are
never deleted, and a user's retention setting is capped by their plan.
"""
from datetime import timedelta

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from datetime_utils import utcnow
from exceptions import StoreUnavailable
from models import PLAN_ENTERPRISE, PLAN_FREE, PLAN_PRO, Task, User, db
from text_helpers import pluralize

DEFAULT_RETENTION_DAYS = 30
RETENTION_LIMITS = {
    PLAN_FREE: 90,
    PLAN_PRO: 365,
    PLAN_ENTERPRISE: 365,
}


def effective_retention_days(user_retention_days, plan):
    max_retention = RETENTION_LIMITS.get((plan or PLAN_FREE).upper(), RETENTION_LIMITS[PLAN_FREE])
    setting = DEFAULT_RETENTION_DAYS if user_retention_days is None else user_retention_days
    return max(0, min(setting, max_retention))


def _expired_completed_query(user_id, cutoff):
    return Task.query.filter(
        Task.user_id == user_id,
        Task.completed.is_(True),
        Task.completed_at.isnot(None),
        Task.completed_at < cutoff,
        Task.is_recurring.is_(False),
    )


def cleanup_completed_tasks(now=None):
    now = now or utcnow()
    errors = []
    tasks_deleted = 0
    users_processed = 0

    try:
        users = User.query.order_by(User.id.asc()).all()
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise StoreUnavailable(f"Could not list users: {exc}") from exc

    current_app.logger.info(f"[Task Cleanup] Processing {pluralize(len(users), 'user')}")
    for user in users:
        user_id = user.id
        try:
            retention = effective_retention_days(user.completed_task_retention_days, user.plan)
            cutoff = now - timedelta(days=retention)
            deleted = _expired_completed_query(user_id, cutoff).delete(synchronize_session=False)
            db.session.commit()
        except Exception as exc:
            db.session.rollback()
            current_app.logger.error(f"[Task Cleanup] Error processing user {user_id}: {exc}")
            errors.append({'user_id': user_id, 'error': str(exc)})
            continue
        if deleted:
            current_app.logger.info(
                f"[Task Cleanup] Deleted {deleted} tasks for user {user_id} (plan: {user.plan}, retention: {retention} days)"
            )
            tasks_deleted += deleted
        users_processed += 1

    message = f"Cleanup complete. Deleted {pluralize(tasks_deleted, 'task')} from {pluralize(users_processed, 'user')}."
    if errors:
        message += f" {pluralize(len(errors), 'error')} occurred."
    current_app.logger.info(f"[Task Cleanup] {message}")
    return {
        'success': not errors,
        'tasks_deleted': tasks_deleted,
        'users_processed': users_processed,
        'errors': errors,
        'message': message,
    }


def preview_cleanup_for_user(user_id, now=None):
    """What cleanup would delete for one user; nothing is removed."""
    now = now or utcnow()
    user = db.session.get(User, user_id)
    if user is None:
        raise LookupError(f"User {user_id} not found")
    retention = effective_retention_days(user.completed_task_retention_days, user.plan)
    cutoff = now - timedelta(days=retention)
    oldest = Task.query.filter(
        Task.user_id == user.id,
        Task.completed.is_(True),
        Task.is_recurring.is_(False),
        Task.completed_at.isnot(None),
    ).order_by(Task.completed_at.asc()).first()
    return {
        'tasks_to_delete': _expired_completed_query(user.id, cutoff).count(),
        'oldest_completed_at': oldest.completed_at.isoformat() if oldest else None,
        'retention_days': retention,
        'plan_limit': RETENTION_LIMITS.get((user.plan or PLAN_FREE).upper(), RETENTION_LIMITS[PLAN_FREE]),
    }
