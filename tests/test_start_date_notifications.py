from datetime import date, datetime

from models import Notification, Task, db
from services.start_date_notifications import count_pending_start_notifications, process_start_date_notifications

NOW = datetime(2024, 1, 8, 9, 0)
TODAY = date(2024, 1, 8)


def test_notifies_tasks_starting_today_once(app, make_task, make_template):
    starting = make_task(title="Kickoff", start_date=TODAY)
    make_task(title="Tomorrow", start_date=date(2024, 1, 9))
    make_task(title="Done", start_date=TODAY, completed=True)
    make_template(start_date=TODAY)

    assert count_pending_start_notifications(NOW) == 1
    result = process_start_date_notifications(NOW)

    assert result['success'] is True
    assert result['tasks_processed'] == 1
    assert result['notifications_sent'] == 1
    [notification] = Notification.query.all()
    assert notification.type == 'task_start'
    assert notification.title == "Task starting today: Kickoff"
    assert notification.link == f"/tasks/{starting.id}"
    assert db.session.get(Task, starting.id).start_date_notification_sent is True

    again = process_start_date_notifications(NOW)
    assert again['tasks_processed'] == 0
    assert again['message'] == "No tasks starting today."
    assert Notification.query.count() == 1


def test_one_failing_notification_does_not_stop_others(app, make_task):
    first = make_task(title="First", start_date=TODAY)
    second = make_task(title="Second", start_date=TODAY)
    first_id = first.id
    delivered = []

    def notify(user_id, task):
        if task.id == first_id:
            raise RuntimeError("push service down")
        delivered.append(task.id)

    result = process_start_date_notifications(NOW, notify=notify)

    assert result['success'] is False
    assert result['notifications_sent'] == 1
    assert result['errors'] == [{'task_id': first_id, 'error': 'push service down'}]
    assert delivered == [second.id]
    assert db.session.get(Task, first_id).start_date_notification_sent is False
    assert count_pending_start_notifications(NOW) == 1
