from datetime import datetime

from models import Task
from services.generation_actions import generation_status_report, run_generation_action
from services.job_state_store import SqlJobStateStore

NOW = datetime(2024, 1, 8, 0, 5)


def test_generate_all_is_the_default_action(app, make_template):
    template = make_template()

    result = run_generation_action(now=NOW)

    assert result['action'] == 'generate-all'
    assert result['success'] is True
    assert result['generated_count'] == 1
    assert Task.query.filter_by(parent_task_id=template.id).count() == 1


def test_generate_for_template(app, make_template):
    template = make_template()

    result = run_generation_action('generate-for-template', template_id=template.id, now=NOW)
    again = run_generation_action('generate-for-template', template_id=template.id, now=NOW)

    assert result['generated'] is True
    assert again['success'] is True
    assert again['generated'] is False
    assert again['message'] == f"Task {template.id} is not due for generation yet"


def test_generate_for_template_error_codes(app, make_task):
    plain = make_task(title="One-off")

    assert run_generation_action('generate-for-template', now=NOW)['code'] == 'MISSING_TEMPLATE_ID'
    missing = run_generation_action('generate-for-template', template_id=404, now=NOW)
    assert missing['code'] == 'NOT_FOUND'
    assert missing['error'] == "Task 404 not found"
    assert run_generation_action('generate-for-template', template_id=plain.id, now=NOW)['code'] == 'GENERATION_ERROR'


def test_invalid_action(app):
    result = run_generation_action('explode', now=NOW)

    assert result['success'] is False
    assert result['code'] == 'INVALID_ACTION'
    assert 'generate-all' in result['valid_actions']


def test_count_pending_and_status_report(app, make_template):
    make_template()
    make_template(title="Later", next_generation_at=datetime(2024, 2, 1))

    result = run_generation_action('count-pending', now=NOW)

    assert result['pending_count'] == 1
    assert result['message'] == "1 recurring task pending generation"
    assert generation_status_report(NOW) == {'pending_count': 1, 'ready': True}


def test_list_status_includes_templates_and_jobs(app, make_template):
    template = make_template()
    SqlJobStateStore(worker_id='worker-a').claim_daily_run('recurring-generation', NOW)

    result = run_generation_action('list-status', now=NOW)

    assert result['pending_count'] == 1
    assert [t['task_id'] for t in result['templates']] == [template.id]
    assert [j['job_name'] for j in result['jobs']] == ['recurring-generation']
    assert result['jobs'][0]['is_running'] is True


def test_reset_schedule_action(app, make_template):
    template = make_template(next_generation_at=datetime(2023, 1, 1))

    result = run_generation_action('reset-schedule', template_id=template.id, now=NOW)

    assert result['success'] is True
    assert result['updated'][0]['next_generation_at'] == '2024-01-08T00:00:00'
    assert run_generation_action('reset-schedule', template_id=404, now=NOW)['code'] == 'NOT_FOUND'


def test_cleanup_duplicates_action(app, make_template, make_task):
    template = make_template()
    for minute in range(2):
        make_task(title="Standup (2024-01-08)", parent_task_id=template.id, created_at=datetime(2024, 1, 8, 0, minute))

    result = run_generation_action('cleanup-duplicates', now=NOW)

    assert result['success'] is True
    assert result['total_removed'] == 1
