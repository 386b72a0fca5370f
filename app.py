import atexit
import logging
import os
import time

from dotenv import load_dotenv
from flask import Flask, current_app

load_dotenv()

from models import db
from scheduler import build_scheduler
from services.validation_service import parse_bool, parse_int

SCHEDULER_EXTENSION = 'job_scheduler'


def _load_config(app):
    app.config['SQLALCHEMY_DATABASE_URI'] = os.environ.get('DATABASE_URL', 'sqlite:///todo.db')
    app.config['SQLALCHEMY_TRACK_MODIFICATIONS'] = False
    app.config['ENABLE_SCHEDULER_JOBS'] = parse_bool(os.environ.get('ENABLE_SCHEDULER_JOBS'), default=True)
    app.config['SCHEDULER_RUN_ON_START'] = parse_bool(os.environ.get('SCHEDULER_RUN_ON_START'), default=True)
    # Job hours are UTC
    app.config['RECURRING_GENERATION_HOUR'] = parse_int(os.environ.get('RECURRING_GENERATION_HOUR'), 0, 0, 23)
    app.config['COMPLETED_CLEANUP_HOUR'] = parse_int(os.environ.get('COMPLETED_CLEANUP_HOUR'), 2, 0, 23)
    app.config['START_DATE_NOTIFY_HOUR'] = parse_int(os.environ.get('START_DATE_NOTIFY_HOUR'), 9, 0, 23)
    app.config['JOB_TIMEOUT_SECONDS'] = parse_int(os.environ.get('JOB_TIMEOUT_SECONDS'), 900, 0)
    app.config['JOB_STALE_AFTER_MINUTES'] = parse_int(os.environ.get('JOB_STALE_AFTER_MINUTES'), 60, 1)
    app.config['JOB_WATCHDOG_MINUTES'] = parse_int(os.environ.get('JOB_WATCHDOG_MINUTES'), 15, 0)
    app.config['LOG_LEVEL'] = (os.environ.get('LOG_LEVEL') or 'INFO').upper()


def _configure_logging(app):
    level = logging.getLevelName(app.config['LOG_LEVEL'])
    if not isinstance(level, int):
        level = logging.INFO
    app.logger.setLevel(level)
    logging.getLogger('apscheduler').setLevel(max(level, logging.WARNING))


def create_app(test_config=None):
    """Composition root: config, database, logger and the background job scheduler."""
    app = Flask(__name__)
    _load_config(app)
    if test_config:
        app.config.update(test_config)
    _configure_logging(app)

    db.init_app(app)
    with app.app_context():
        db.create_all()

    app.extensions[SCHEDULER_EXTENSION] = build_scheduler(app)
    if app.config['ENABLE_SCHEDULER_JOBS']:
        _start_scheduler(app)
    return app


def _start_scheduler(app):
    """Start background jobs once per serving process."""
    # Avoid double-start in Flask debug reloader
    if app.debug and os.environ.get('WERKZEUG_RUN_MAIN') != 'true':
        return
    scheduler = get_scheduler(app)
    if scheduler.start(run_on_start=app.config['SCHEDULER_RUN_ON_START']):
        atexit.register(scheduler.stop)


def get_scheduler(app=None):
    return (app or current_app).extensions[SCHEDULER_EXTENSION]


def main():
    app = create_app()
    scheduler = get_scheduler(app)
    if not scheduler.running:
        app.logger.warning("Scheduler jobs are disabled (ENABLE_SCHEDULER_JOBS=0); nothing to run")
        return
    app.logger.info("Recurring task worker running; press Ctrl+C to stop")
    try:
        while scheduler.running:
            time.sleep(60)
    except KeyboardInterrupt:
        scheduler.stop()


if __name__ == '__main__':
    main()
