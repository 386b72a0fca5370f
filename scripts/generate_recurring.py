import argparse
import json

from app import create_app
from services.generation_actions import ACTIONS, generation_status_report, run_generation_action


def main() -> None:
    parser = argparse.ArgumentParser(description="Run a recurring task generation action.")
    parser.add_argument("action", nargs="?", default="generate-all", choices=ACTIONS + ("status",))
    parser.add_argument("--template-id", type=int, default=None, help="Template for generate-for-template / reset-schedule")
    args = parser.parse_args()

    app = create_app({"ENABLE_SCHEDULER_JOBS": False})
    with app.app_context():
        if args.action == "status":
            result = generation_status_report()
        else:
            result = run_generation_action(args.action, template_id=args.template_id)
    print(json.dumps(result, indent=2, default=str))


if __name__ == "__main__":
    main()
