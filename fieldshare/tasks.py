"""
Celery tasks: adjacency recomputation and access-request notifications.
"""

import logging
from typing import Any, Dict

from fieldshare.celery_app import celery_app
from fieldshare.database import get_db_session

logger = logging.getLogger(__name__)


@celery_app.task(bind=True, max_retries=3, default_retry_delay=60)
def recompute_adjacency_task(self, field_id: str) -> Dict[str, Any]:
    """
    Rebuild the adjacency edges of one field.

    Args:
        field_id: UUID of the field whose edges are rebuilt

    Returns:
        Counts of edges created and candidates checked / skipped
    """
    task_id = self.request.id
    logger.info(f"Starting adjacency task {task_id} for field {field_id}")

    try:
        # Import here to avoid circular imports
        from fieldshare.modules.adjacency.proximity import ProximityEngine
        from fieldshare.repository import SqlAlchemyFieldRepository

        with get_db_session() as db:
            result = ProximityEngine(SqlAlchemyFieldRepository(db)).recompute_adjacency(field_id)

        logger.info(f"Adjacency task {task_id} completed for field {field_id}")
        return {
            "status": "completed",
            "field_id": field_id,
            "edges_created": result.edges_created,
            "candidates_checked": result.candidates_checked,
            "candidates_skipped": result.candidates_skipped,
        }

    except Exception as exc:
        logger.error(f"Adjacency task {task_id} failed: {exc}")
        raise self.retry(exc=exc)


@celery_app.task
def rebuild_all_adjacency() -> Dict[str, Any]:
    """
    Scheduled task: rebuild adjacency for every field.
    Picks up fields whose neighbors changed since their own last write.
    """
    logger.info("Starting full adjacency rebuild")

    try:
        from fieldshare.modules.adjacency.proximity import ProximityEngine
        from fieldshare.repository import SqlAlchemyFieldRepository

        with get_db_session() as db:
            summary = ProximityEngine(SqlAlchemyFieldRepository(db)).recompute_all()

        logger.info(f"Adjacency rebuild finished: {summary}")
        return {"status": "completed", **summary}

    except Exception as exc:
        logger.error(f"Adjacency rebuild failed: {exc}")
        return {"status": "error", "message": str(exc)}


@celery_app.task(bind=True, max_retries=3, default_retry_delay=30)
def send_access_requested_notification(self, owner_user_id: str, requester_name: str, field_name: str) -> Dict[str, Any]:
    """SMS the field owner that a neighbor asked to see their field."""
    from fieldshare.modules.notifications.notifier import SmsNotifier, lookup_phone_number

    try:
        notifier = SmsNotifier(lookup_phone_number)
        sent = notifier.notify_access_requested(owner_user_id, requester_name, field_name)
    except Exception as exc:
        logger.error(f"Access-request notification for {owner_user_id} failed: {exc}")
        raise self.retry(exc=exc)
    return {"status": "sent" if sent else "skipped", "user_id": owner_user_id}


@celery_app.task(bind=True, max_retries=3, default_retry_delay=30)
def send_access_decided_notification(
    self, viewer_user_id: str, owner_name: str, field_name: str, approved: bool
) -> Dict[str, Any]:
    """SMS the requester with the owner's decision."""
    from fieldshare.modules.notifications.notifier import SmsNotifier, lookup_phone_number

    try:
        notifier = SmsNotifier(lookup_phone_number)
        sent = notifier.notify_access_decided(viewer_user_id, owner_name, field_name, approved)
    except Exception as exc:
        logger.error(f"Access-decision notification for {viewer_user_id} failed: {exc}")
        raise self.retry(exc=exc)
    return {"status": "sent" if sent else "skipped", "user_id": viewer_user_id}
