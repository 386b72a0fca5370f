import json
from datetime import datetime

import pytest

from app import create_app
from models import RECURRENCE_ACTIVE, Task, User, db


@pytest.fixture
def app():
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite://',
        'ENABLE_SCHEDULER_JOBS': False,
        'JOB_TIMEOUT_SECONDS': 0,
        'JOB_WATCHDOG_MINUTES': 0,
    })
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def user(app):
    user = User(username='alice', email='alice@example.com', plan='FREE')
    db.session.add(user)
    db.session.commit()
    return user


@pytest.fixture
def make_template(user):
    """Insert a recurring template row directly, bypassing rule validation."""

    def _make(config=None, next_generation_at=datetime(2024, 1, 8), title='Standup', **fields):
        if config is None:
            config = {'pattern': 'DAILY', 'interval': 1}
        raw = config if isinstance(config, str) else json.dumps(config)
        pattern = config.get('pattern') if isinstance(config, dict) else None
        template = Task(
            user_id=user.id,
            title=title,
            description=fields.pop('description', 'Daily sync'),
            is_recurring=True,
            recurring_pattern=fields.pop('recurring_pattern', pattern),
            recurring_config=raw,
            recurring_start_date=fields.pop('recurring_start_date', None),
            next_generation_at=next_generation_at,
            recurrence_status=fields.pop('recurrence_status', RECURRENCE_ACTIVE),
            occurrence_count=fields.pop('occurrence_count', 0),
            **fields,
        )
        db.session.add(template)
        db.session.commit()
        return template

    return _make


@pytest.fixture
def make_task(user):
    def _make(**fields):
        fields.setdefault('title', 'Task')
        task = Task(user_id=fields.pop('user_id', user.id), **fields)
        db.session.add(task)
        db.session.commit()
        return task

    return _make
