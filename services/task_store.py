"""SQLAlchemy-backed task store used by the generation executor and the duplicate reconciler."""

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError

from exceptions import StoreUnavailable
from models import RECURRENCE_ACTIVE, RECURRENCE_ENDED, Task, db


def _template_filter(query):
    return query.filter(Task.is_recurring.is_(True), Task.parent_task_id.is_(None))


class SqlTaskStore:
    """
    Reads and writes task rows through the Flask-SQLAlchemy session.

    Writes only flush; the caller decides when a unit of work is committed so an
    instance and its template update land together.
    """

    def __init__(self, session=None):
        self.session = session or db.session

    def _due_query(self, now):
        query = _template_filter(Task.query).filter(
            or_(Task.recurrence_status.is_(None), Task.recurrence_status == RECURRENCE_ACTIVE),
            Task.next_generation_at.isnot(None),
            Task.next_generation_at <= now,
            or_(Task.recurring_end_date.is_(None), Task.recurring_end_date >= now.date()),
        )
        return query

    def find_due_templates(self, now):
        try:
            return self._due_query(now).order_by(Task.id.asc()).all()
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise StoreUnavailable(f"Could not list due templates: {exc}") from exc

    def count_due_templates(self, now):
        try:
            return self._due_query(now).count()
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise StoreUnavailable(f"Could not count due templates: {exc}") from exc

    def find_templates(self, active_only=False, template_id=None):
        query = _template_filter(Task.query)
        if active_only:
            query = query.filter(or_(Task.recurrence_status.is_(None), Task.recurrence_status == RECURRENCE_ACTIVE))
        if template_id is not None:
            query = query.filter(Task.id == template_id)
        try:
            return query.order_by(Task.id.asc()).all()
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise StoreUnavailable(f"Could not list templates: {exc}") from exc

    def find_expired_templates(self, today):
        """Active templates whose end date is already behind `today`."""
        query = _template_filter(Task.query).filter(
            or_(Task.recurrence_status.is_(None), Task.recurrence_status == RECURRENCE_ACTIVE),
            Task.recurring_end_date.isnot(None),
            Task.recurring_end_date < today,
        )
        try:
            return query.order_by(Task.id.asc()).all()
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise StoreUnavailable(f"Could not list expired templates: {exc}") from exc

    def instance_exists(self, template_id, occurrence_date):
        return Task.query.filter(
            Task.parent_task_id == template_id,
            Task.occurrence_date == occurrence_date,
        ).first() is not None

    def get_task(self, task_id):
        return self.session.get(Task, task_id)

    def find_instances_by_template(self, template_id, newest_first=False):
        order = (Task.created_at.desc(), Task.id.desc()) if newest_first else (Task.created_at.asc(), Task.id.asc())
        return Task.query.filter(
            Task.parent_task_id == template_id,
            Task.is_recurring.is_(False),
        ).order_by(*order).all()

    def create_task(self, data):
        task = Task(**data)
        self.session.add(task)
        self.session.flush()
        return task

    def create_instance(self, data):
        payload = dict(data)
        payload['is_recurring'] = False
        return self.create_task(payload)

    def update_template(self, template, patch):
        for key, value in patch.items():
            setattr(template, key, value)
        self.session.flush()
        return template

    def end_template(self, template):
        return self.update_template(template, {
            'recurrence_status': RECURRENCE_ENDED,
            'next_generation_at': None,
        })

    def delete_instance(self, instance):
        self.session.delete(instance)
        self.session.flush()

    def commit(self):
        self.session.commit()

    def rollback(self):
        self.session.rollback()
