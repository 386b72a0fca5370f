"""
Daily background jobs (recurring generation, completed task cleanup, start-date notifications).

Timers live in an APScheduler BackgroundScheduler, but whether a firing does any work is
decided by the durable SchedulerState row: each job completes at most once per UTC day no
matter how many processes or restarts fire it.
"""
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional

import pytz
from apscheduler.schedulers.background import BackgroundScheduler

from background_jobs import run_app_context_job
from datetime_utils import utcnow
from models import JOB_COMPLETED_CLEANUP, JOB_RECURRING_GENERATION, JOB_START_DATE_NOTIFY
from services.completed_cleanup import cleanup_completed_tasks
from services.job_state_store import SqlJobStateStore
from services.recurring_generator import RecurringTaskGenerator
from services.start_date_notifications import process_start_date_notifications
from text_helpers import summarize_errors, truncate_text

STATUS_COMPLETED = 'completed'
STATUS_FAILED = 'failed'
STATUS_SKIPPED = 'skipped'

WATCHDOG_JOB_ID = 'stale-run-watchdog'


@dataclass
class ScheduledJob:
    name: str
    payload: Callable[..., Any]
    hour: int
    minute: int = 0


@dataclass
class JobRunOutcome:
    job_name: str
    status: str
    result: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None

    def to_dict(self):
        return {
            'job_name': self.job_name,
            'status': self.status,
            'result': self.result,
            'error': self.error,
        }


def _result_dict(result):
    if result is None:
        return {}
    if hasattr(result, 'to_dict'):
        return result.to_dict()
    if isinstance(result, dict):
        return result
    return {'result': result}


def _error_summary(data):
    if data.get('success', True):
        return None
    return summarize_errors(data.get('errors')) or truncate_text(data.get('message') or 'Job reported failure')


def run_recurring_generation(now=None):
    return RecurringTaskGenerator().generate_all(now)


def run_completed_cleanup(now=None):
    return cleanup_completed_tasks(now)


def run_start_date_notifications(now=None):
    return process_start_date_notifications(now)


class JobScheduler:
    """Owns the timer thread and the per-job run bookkeeping; started and stopped by the app factory."""

    def __init__(self, app, state_store=None):
        self.app = app
        self.state_store = state_store or SqlJobStateStore()
        self._jobs = {}
        self._scheduler = None

    @property
    def running(self):
        return bool(self._scheduler and self._scheduler.running)

    def register(self, name, payload, hour, minute=0):
        self._jobs[name] = ScheduledJob(name=name, payload=payload, hour=hour, minute=minute)
        return self._jobs[name]

    def job_names(self):
        return list(self._jobs)

    def _stale_after(self):
        return timedelta(minutes=self.app.config.get('JOB_STALE_AFTER_MINUTES', 60))

    # ---------- lifecycle ----------
    def start(self, run_on_start=True):
        if self.running:
            self.app.logger.info("[Scheduler] Already started in this process")
            return False

        scheduler = BackgroundScheduler(timezone=pytz.utc)
        for job in self._jobs.values():
            scheduler.add_job(
                self.run_job, 'cron', hour=job.hour, minute=job.minute, args=[job.name],
                id=job.name, replace_existing=True, coalesce=True, max_instances=1,
                misfire_grace_time=3600,
            )
            if run_on_start:
                # Same once-per-day guard applies; this only catches up a late deploy.
                scheduler.add_job(
                    self.run_job, 'date', run_date=datetime.now(pytz.utc), args=[job.name],
                    id=f"{job.name}-startup", replace_existing=True, misfire_grace_time=None,
                )
        watchdog_minutes = self.app.config.get('JOB_WATCHDOG_MINUTES') or 0
        if watchdog_minutes:
            scheduler.add_job(
                self.release_stale_runs, 'interval', minutes=watchdog_minutes,
                id=WATCHDOG_JOB_ID, replace_existing=True, coalesce=True, max_instances=1,
            )
        scheduler.start()
        self._scheduler = scheduler
        schedule = ', '.join(f"{j.name} {j.hour:02d}:{j.minute:02d}" for j in self._jobs.values())
        self.app.logger.info(f"[Scheduler] Started ({schedule} UTC)")
        return True

    def stop(self):
        if not self.running:
            return False
        self._scheduler.shutdown(wait=False)
        self._scheduler = None
        self.app.logger.info("[Scheduler] Stopped")
        return True

    def status(self):
        jobs = []
        if self._scheduler:
            for job in self._scheduler.get_jobs():
                next_run = getattr(job, 'next_run_time', None)
                jobs.append({'id': job.id, 'next_run_time': next_run.isoformat() if next_run else None})
        return {'started': self.running, 'registered': self.job_names(), 'jobs': jobs}

    # ---------- runs ----------
    def run_job(self, name, now=None):
        """
        One firing: claim today's run, execute the payload, record the outcome.

        Never raises for payload or bookkeeping failures; the outcome says what happened.
        """
        job = self._jobs.get(name)
        if job is None:
            raise KeyError(f"Unknown job: {name}")
        logger = self.app.logger
        started_at = now or utcnow()

        with self.app.app_context():
            try:
                claimed = self.state_store.claim_daily_run(name, started_at, self._stale_after())
            except Exception as exc:
                error = truncate_text(f"Could not claim job state: {exc}")
                logger.error(f"[Scheduler] {name}: {error}")
                return JobRunOutcome(name, STATUS_FAILED, error=error)

            if not claimed:
                try:
                    state = self.state_store.get_job_state(name)
                except Exception as exc:
                    logger.warning(f"[Scheduler] {name}: could not read job state: {exc}")
                    state = None
                if state is None:
                    last_run = 'unknown'
                else:
                    last_run = state.last_run_date.isoformat() if state.last_run_date else 'never'
                logger.info(f"[Scheduler] {name} already ran today or is running (last run {last_run}), skipping")
                return JobRunOutcome(name, STATUS_SKIPPED)

            logger.info(f"[Scheduler] Running {name}")
            try:
                result = run_app_context_job(
                    self.app, job.payload, kwargs={'now': now},
                    timeout=self.app.config.get('JOB_TIMEOUT_SECONDS') or None, name=name,
                )
            except Exception as exc:
                error = truncate_text(f"{exc.__class__.__name__}: {exc}")
                logger.error(f"[Scheduler] {name} failed: {error}")
                self._finish(name, now or utcnow(), error, completed=False)
                return JobRunOutcome(name, STATUS_FAILED, error=error)

            data = _result_dict(result)
            error = _error_summary(data)
            self._finish(name, now or utcnow(), error, completed=True)
            if error:
                logger.warning(f"[Scheduler] {name} finished with errors: {data.get('message') or error}")
            else:
                logger.info(f"[Scheduler] {name} finished: {data.get('message', 'ok')}")
            return JobRunOutcome(name, STATUS_COMPLETED, result=data, error=error)

    def _finish(self, name, finished_at, error, completed):
        try:
            if not self.state_store.finish_run(name, finished_at, error=error, completed=completed):
                self.app.logger.warning(f"[Scheduler] {name} claim was released by another worker before finishing")
        except Exception as exc:
            self.app.logger.error(f"[Scheduler] Could not update job state for {name}: {exc}")

    def trigger(self, name, now=None):
        """Manual entry point; goes through the same daily guard as the timer."""
        self.app.logger.info(f"[Scheduler] Manual trigger for {name}")
        return self.run_job(name, now=now)

    def release_stale_runs(self, now=None):
        with self.app.app_context():
            try:
                released = self.state_store.release_stale_runs(now or utcnow(), self._stale_after())
            except Exception as exc:
                self.app.logger.error(f"[Scheduler] Stale run watchdog failed: {exc}")
                return []
        for name in released:
            self.app.logger.warning(f"[Scheduler] Released stale run of {name}")
        return released

    def reset_job(self, name):
        """Forget today's run so the job may execute again; operational use only."""
        with self.app.app_context():
            state = self.state_store.upsert_job_state(name, {
                'last_run_date': None,
                'is_running': False,
                'last_error': None,
                'run_started_at': None,
                'locked_by': None,
            })
            self.app.logger.info(f"[Scheduler] Reset job state for {name}")
            return state.to_dict()

    def job_states(self):
        with self.app.app_context():
            return [state.to_dict() for state in self.state_store.list_job_states()]


def build_scheduler(app, state_store=None):
    scheduler = JobScheduler(app, state_store=state_store)
    scheduler.register(JOB_RECURRING_GENERATION, run_recurring_generation,
                       hour=app.config.get('RECURRING_GENERATION_HOUR', 0))
    scheduler.register(JOB_COMPLETED_CLEANUP, run_completed_cleanup,
                       hour=app.config.get('COMPLETED_CLEANUP_HOUR', 2))
    scheduler.register(JOB_START_DATE_NOTIFY, run_start_date_notifications,
                       hour=app.config.get('START_DATE_NOTIFY_HOUR', 9))
    return scheduler
