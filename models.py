from flask_sqlalchemy import SQLAlchemy

from datetime_utils import utcnow

db = SQLAlchemy()

PLAN_FREE = 'FREE'
PLAN_PRO = 'PRO'
PLAN_ENTERPRISE = 'ENTERPRISE'

RECURRENCE_ACTIVE = 'active'
RECURRENCE_ENDED = 'ended'

JOB_RECURRING_GENERATION = 'recurring-generation'
JOB_COMPLETED_CLEANUP = 'completed-task-cleanup'
JOB_START_DATE_NOTIFY = 'start-date-notify'


def _iso(value):
    return value.isoformat() if value else None


class User(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(80), unique=True, nullable=False)
    email = db.Column(db.String(120), unique=True, nullable=True)
    plan = db.Column(db.String(20), nullable=False, default=PLAN_FREE)  # FREE | PRO | ENTERPRISE
    completed_task_retention_days = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow)

    tasks = db.relationship('Task', backref='owner', lazy=True, cascade="all, delete-orphan")
    notifications = db.relationship('Notification', backref='user', lazy=True, cascade="all, delete-orphan")

    def to_dict(self):
        return {
            'id': self.id,
            'username': self.username,
            'email': self.email,
            'plan': self.plan,
            'completed_task_retention_days': self.completed_task_retention_days,
            'created_at': _iso(self.created_at),
        }


class Task(db.Model):
    """
    A task row. Recurring templates and the instances generated from them share the table:
    templates have is_recurring=True and no parent, instances point at their template.
    """
    __table_args__ = (
        db.UniqueConstraint('parent_task_id', 'occurrence_date', name='uq_task_parent_occurrence'),
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    project_id = db.Column(db.Integer, nullable=True)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    priority = db.Column(db.String(10), default='medium')  # low | medium | high
    start_date = db.Column(db.Date, nullable=True)
    due_date = db.Column(db.Date, nullable=True)
    completed = db.Column(db.Boolean, default=False, nullable=False)
    completed_at = db.Column(db.DateTime, nullable=True)
    start_date_notification_sent = db.Column(db.Boolean, default=False, nullable=False)

    # Template fields
    is_recurring = db.Column(db.Boolean, default=False, nullable=False)
    recurring_pattern = db.Column(db.String(20), nullable=True)  # DAILY | WEEKLY | MONTHLY | CUSTOM
    recurring_config = db.Column(db.Text, nullable=True)  # JSON rule
    recurring_start_date = db.Column(db.Date, nullable=True)
    recurring_end_date = db.Column(db.Date, nullable=True)
    next_generation_at = db.Column(db.DateTime, nullable=True, index=True)
    last_generated_at = db.Column(db.DateTime, nullable=True)
    occurrence_count = db.Column(db.Integer, default=0, nullable=False)
    recurrence_status = db.Column(db.String(20), nullable=True)  # active | ended

    # Instance fields
    parent_task_id = db.Column(db.Integer, db.ForeignKey('task.id'), nullable=True, index=True)
    parent = db.relationship('Task', remote_side=[id], backref='instances', foreign_keys=[parent_task_id])
    occurrence_date = db.Column(db.Date, nullable=True)

    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    def is_template(self):
        return bool(self.is_recurring) and self.parent_task_id is None

    def has_ended(self):
        return self.recurrence_status == RECURRENCE_ENDED

    def to_dict(self):
        data = {
            'id': self.id,
            'user_id': self.user_id,
            'project_id': self.project_id,
            'title': self.title,
            'description': self.description,
            'priority': self.priority,
            'start_date': _iso(self.start_date),
            'due_date': _iso(self.due_date),
            'completed': self.completed,
            'completed_at': _iso(self.completed_at),
            'is_recurring': self.is_recurring,
            'parent_task_id': self.parent_task_id,
            'occurrence_date': _iso(self.occurrence_date),
            'created_at': _iso(self.created_at),
        }
        if self.is_template():
            data.update({
                'recurring_pattern': self.recurring_pattern,
                'recurring_config': self.recurring_config,
                'recurring_start_date': _iso(self.recurring_start_date),
                'recurring_end_date': _iso(self.recurring_end_date),
                'next_generation_at': _iso(self.next_generation_at),
                'last_generated_at': _iso(self.last_generated_at),
                'occurrence_count': self.occurrence_count,
                'recurrence_status': self.recurrence_status,
            })
        return data


class SchedulerState(db.Model):
    """Durable per-job bookkeeping; one row per named background job."""
    job_name = db.Column(db.String(64), primary_key=True)
    last_run_date = db.Column(db.DateTime, nullable=True)
    is_running = db.Column(db.Boolean, default=False, nullable=False)
    last_error = db.Column(db.String(500), nullable=True)
    run_started_at = db.Column(db.DateTime, nullable=True)
    locked_by = db.Column(db.String(120), nullable=True)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    def to_dict(self):
        return {
            'job_name': self.job_name,
            'last_run_date': _iso(self.last_run_date),
            'is_running': self.is_running,
            'last_error': self.last_error,
            'run_started_at': _iso(self.run_started_at),
            'locked_by': self.locked_by,
            'updated_at': _iso(self.updated_at),
        }


class Notification(db.Model):
    """In-app notification record."""
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    type = db.Column(db.String(50), nullable=False, default='general')  # e.g. task_start
    title = db.Column(db.String(200), nullable=False)
    body = db.Column(db.Text, nullable=True)
    link = db.Column(db.String(300), nullable=True)
    channel = db.Column(db.String(20), nullable=True)  # in_app | email | push | mixed
    read_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'user_id': self.user_id,
            'type': self.type,
            'title': self.title,
            'body': self.body,
            'link': self.link,
            'channel': self.channel,
            'read_at': _iso(self.read_at),
            'created_at': _iso(self.created_at),
        }
