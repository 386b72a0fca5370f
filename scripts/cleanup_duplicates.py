import argparse

from app import create_app
from services.duplicate_service import cleanup_duplicate_instances, find_duplicate_instances


def print_report(report) -> None:
    if not report:
        print("No duplicate recurring task instances found.")
        return
    for entry in report:
        print(f'Recurring task "{entry["title"]}" (ID: {entry["task_id"]})')
        for cluster in entry["clusters"]:
            dupes = ", ".join(str(i) for i in cluster["duplicate_ids"])
            print(f'   DUPLICATE {cluster["key"]}: keep {cluster["keep_id"]}, remove {dupes}')


def main() -> None:
    parser = argparse.ArgumentParser(description="Find or remove duplicate recurring task instances.")
    parser.add_argument("--template-id", type=int, default=None, help="Limit to one recurring template")
    parser.add_argument("--dry-run", action="store_true", help="Report duplicates without deleting")
    args = parser.parse_args()

    app = create_app({"ENABLE_SCHEDULER_JOBS": False})
    with app.app_context():
        if args.dry_run:
            print_report(find_duplicate_instances(template_id=args.template_id))
            return
        result = cleanup_duplicate_instances(template_id=args.template_id)
    print(result["message"])
    for detail in result["templates"]:
        print(f'   - "{detail["title"]}": {detail["duplicates_removed"]} duplicate(s) removed')


if __name__ == "__main__":
    main()
