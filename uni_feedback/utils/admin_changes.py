import logging

from uni_feedback.services.notification_service import NotificationService

logger = logging.getLogger("app.admin")


def apply_changes(obj, data: dict) -> dict:
    """
    Set every key of `data` on `obj`, string values trimmed.
    Returns {field: (old, new)} for the fields that actually changed.
    """
    changes = {}
    for field, value in data.items():
        if isinstance(value, str):
            value = value.strip()
        old = getattr(obj, field)
        if old != value:
            setattr(obj, field, value)
            changes[field] = (old, value)
    return changes


def notify_admin_change(admin, resource_type, resource_id, resource_name, action, changes=None, item=None):
    """Moderator channel message; failures are logged and swallowed."""
    try:
        NotificationService().admin_change(
            admin, resource_type, resource_id, resource_name, action, changes=changes, item=item
        )
    except Exception:
        logger.exception("Admin change notification failed %s #%s", resource_type, resource_id)
