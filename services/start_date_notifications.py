"""Daily in-app notifications for tasks whose start date is today (UTC)."""

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from datetime_utils import utcnow
from exceptions import StoreUnavailable
from models import Notification, Task, db
from text_helpers import pluralize


def record_in_app_notification(user_id, task):
    """Default notifier: store an in-app notification row; delivery happens elsewhere."""
    db.session.add(Notification(
        user_id=user_id,
        type='task_start',
        title=f"Task starting today: {task.title}",
        body=task.description,
        link=f"/tasks/{task.id}",
        channel='in_app',
    ))


def _tasks_starting_query(today):
    return Task.query.filter(
        Task.start_date == today,
        Task.start_date_notification_sent.is_(False),
        Task.completed.is_(False),
        Task.is_recurring.is_(False),
    )


def count_pending_start_notifications(now=None):
    today = (now or utcnow()).date()
    return _tasks_starting_query(today).count()


def process_start_date_notifications(now=None, notify=None):
    now = now or utcnow()
    notify = notify or record_in_app_notification
    today = now.date()
    errors = []
    notifications_sent = 0

    try:
        tasks = _tasks_starting_query(today).order_by(Task.id.asc()).all()
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise StoreUnavailable(f"Could not list tasks starting today: {exc}") from exc

    current_app.logger.info(f"[StartDateNotification] Found {pluralize(len(tasks), 'task')} starting today")
    for task in tasks:
        task_id = task.id
        try:
            notify(task.user_id, task)
            task.start_date_notification_sent = True
            db.session.commit()
            notifications_sent += 1
        except Exception as exc:
            db.session.rollback()
            message = f"Failed to process task {task_id}: {exc}"
            current_app.logger.error(f"[StartDateNotification] {message}")
            errors.append({'task_id': task_id, 'error': str(exc)})

    if errors:
        message = (f"Processed {pluralize(len(tasks), 'task')} with {pluralize(len(errors), 'error')}. "
                   f"Sent {pluralize(notifications_sent, 'notification')}.")
    elif not tasks:
        message = "No tasks starting today."
    else:
        message = f"Processed {pluralize(len(tasks), 'task')}. Sent {pluralize(notifications_sent, 'notification')}."
    current_app.logger.info(f"[StartDateNotification] {message}")
    return {
        'success': not errors,
        'tasks_processed': len(tasks),
        'notifications_sent': notifications_sent,
        'errors': errors,
        'message': message,
    }
