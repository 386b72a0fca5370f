"""Durable job bookkeeping: at most one completed run per job per UTC day."""

import os
import socket
from datetime import timedelta

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from datetime_utils import utc_day_start, utcnow
from models import SchedulerState, db
from text_helpers import truncate_text

DEFAULT_STALE_AFTER = timedelta(minutes=60)


def default_worker_id():
    return f"{socket.gethostname()}:{os.getpid()}"


class SqlJobStateStore:
    def __init__(self, session=None, worker_id=None):
        self.session = session or db.session
        self.worker_id = worker_id or default_worker_id()

    def get_job_state(self, name):
        return self.session.get(SchedulerState, name, populate_existing=True)

    def list_job_states(self):
        return SchedulerState.query.order_by(SchedulerState.job_name.asc()).all()

    def upsert_job_state(self, name, patch):
        state = self.get_job_state(name)
        if state is None:
            state = SchedulerState(job_name=name, is_running=False)
            self.session.add(state)
        for key, value in patch.items():
            setattr(state, key, value)
        try:
            self.session.commit()
        except IntegrityError:
            # Another worker inserted the row first; apply the patch to theirs.
            self.session.rollback()
            state = self.get_job_state(name)
            for key, value in patch.items():
                setattr(state, key, value)
            self.session.commit()
        return state

    def ensure_job_state(self, name):
        """Create the row on first use; the primary key makes concurrent inserts safe."""
        if self.get_job_state(name) is not None:
            return
        try:
            self.session.add(SchedulerState(job_name=name, is_running=False))
            self.session.commit()
        except IntegrityError:
            self.session.rollback()

    def claim_daily_run(self, name, now, stale_after=DEFAULT_STALE_AFTER):
        """
        Atomically move a job from idle to running for the UTC day of `now`.

        A single conditional UPDATE does the check and the act, so of any number of
        concurrent callers at most one sees rowcount 1. A running claim older than
        `stale_after` may be taken over.
        """
        today_start = utc_day_start(now)
        stale_cutoff = now - stale_after
        try:
            self.ensure_job_state(name)
            claimed = SchedulerState.query.filter(
                SchedulerState.job_name == name,
                or_(SchedulerState.last_run_date.is_(None), SchedulerState.last_run_date < today_start),
                or_(
                    SchedulerState.is_running.is_(False),
                    SchedulerState.run_started_at.is_(None),
                    SchedulerState.run_started_at < stale_cutoff,
                ),
            ).update({
                SchedulerState.is_running: True,
                SchedulerState.run_started_at: now,
                SchedulerState.locked_by: self.worker_id,
                SchedulerState.updated_at: utcnow(),
            }, synchronize_session=False)
            self.session.commit()
        except SQLAlchemyError:
            self.session.rollback()
            raise
        return claimed == 1

    def finish_run(self, name, finished_at, error=None, completed=True):
        """
        Release this worker's claim. A completed run records `finished_at` as the last run
        date; a failed one leaves it untouched so the job stays eligible today.
        Returns False when the claim was no longer ours.
        """
        values = {
            SchedulerState.is_running: False,
            SchedulerState.locked_by: None,
            SchedulerState.last_error: truncate_text(error) if error else None,
            SchedulerState.updated_at: utcnow(),
        }
        if completed:
            values[SchedulerState.last_run_date] = finished_at
        try:
            updated = SchedulerState.query.filter(
                SchedulerState.job_name == name,
                SchedulerState.locked_by == self.worker_id,
            ).update(values, synchronize_session=False)
            self.session.commit()
        except SQLAlchemyError:
            self.session.rollback()
            raise
        return updated == 1

    def release_stale_runs(self, now, stale_after=DEFAULT_STALE_AFTER):
        """Clear running flags whose claim is older than `stale_after`; returns the job names released."""
        cutoff = now - stale_after
        stale = SchedulerState.query.filter(
            SchedulerState.is_running.is_(True),
            or_(SchedulerState.run_started_at.is_(None), SchedulerState.run_started_at < cutoff),
        ).all()
        names = []
        for state in stale:
            state.is_running = False
            state.last_error = truncate_text(
                f"Run claimed by {state.locked_by or 'unknown worker'} at "
                f"{state.run_started_at.isoformat() if state.run_started_at else 'unknown time'} "
                f"did not finish; released as stale"
            )
            state.locked_by = None
            names.append(state.job_name)
        if names:
            self.session.commit()
        return names
