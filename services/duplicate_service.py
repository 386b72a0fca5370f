"""
Detect and remove redundant instances left behind by overlapping generation runs.

Instances of one template are clustered by occurrence date, or by title (which embeds
the date) for rows created before occurrence dates were recorded. The earliest created
instance of each cluster is kept.
"""
from flask import current_app

from services.task_store import SqlTaskStore
from text_helpers import pluralize


def _instance_key(instance):
    if instance.occurrence_date:
        return ('occurrence', instance.occurrence_date.isoformat())
    return ('title', (instance.title or '').strip())


def _creation_order(instance):
    return (instance.created_at is None, instance.created_at, instance.id)


def group_duplicates(instances):
    """Return clusters (lists sorted oldest first) that hold more than one instance."""
    groups = {}
    for instance in instances:
        groups.setdefault(_instance_key(instance), []).append(instance)
    clusters = []
    for members in groups.values():
        if len(members) > 1:
            clusters.append(sorted(members, key=_creation_order))
    clusters.sort(key=lambda cluster: _creation_order(cluster[0]))
    return clusters


def find_duplicate_instances(template_id=None, store=None):
    """Dry-run report of duplicate clusters per template; nothing is deleted."""
    store = store or SqlTaskStore()
    report = []
    for template in store.find_templates(template_id=template_id):
        clusters = group_duplicates(store.find_instances_by_template(template.id))
        if not clusters:
            continue
        report.append({
            'task_id': template.id,
            'title': template.title,
            'clusters': [
                {
                    'key': cluster[0].occurrence_date.isoformat() if cluster[0].occurrence_date else cluster[0].title,
                    'keep_id': cluster[0].id,
                    'duplicate_ids': [instance.id for instance in cluster[1:]],
                }
                for cluster in clusters
            ],
        })
    return report


def cleanup_duplicate_instances(template_id=None, store=None):
    """Delete every duplicate but the earliest created; commits per template."""
    store = store or SqlTaskStore()
    details = []
    total_removed = 0
    for template in store.find_templates(template_id=template_id):
        removed = 0
        for cluster in group_duplicates(store.find_instances_by_template(template.id)):
            keep = cluster[0]
            for duplicate in cluster[1:]:
                current_app.logger.info(
                    f"[Duplicates] Deleting duplicate '{duplicate.title}' (ID: {duplicate.id}), keeping {keep.id}"
                )
                store.delete_instance(duplicate)
                removed += 1
        if removed:
            store.commit()
            details.append({'task_id': template.id, 'title': template.title, 'duplicates_removed': removed})
            total_removed += removed

    message = f"Removed {pluralize(total_removed, 'duplicate instance')}."
    current_app.logger.info(f"[Duplicates] {message}")
    return {'total_removed': total_removed, 'templates': details, 'message': message}
