import argparse
import json

from app import create_app, get_scheduler
from models import JOB_COMPLETED_CLEANUP, JOB_RECURRING_GENERATION, JOB_START_DATE_NOTIFY

JOB_NAMES = (JOB_RECURRING_GENERATION, JOB_COMPLETED_CLEANUP, JOB_START_DATE_NOTIFY)


def main() -> None:
    parser = argparse.ArgumentParser(description="Manually fire or reset a daily background job.")
    parser.add_argument("job", nargs="?", choices=JOB_NAMES, help="Job to run (omit with --status)")
    parser.add_argument("--reset", action="store_true", help="Clear the job's state so it can run again today")
    parser.add_argument("--status", action="store_true", help="Print every job's stored state")
    args = parser.parse_args()

    app = create_app({"ENABLE_SCHEDULER_JOBS": False})
    scheduler = get_scheduler(app)
    if args.status:
        print(json.dumps(scheduler.job_states(), indent=2))
        return
    if not args.job:
        parser.error("job is required unless --status is given")
    if args.reset:
        scheduler.reset_job(args.job)
    outcome = scheduler.trigger(args.job)
    print(json.dumps(outcome.to_dict(), indent=2, default=str))


if __name__ == "__main__":
    main()
