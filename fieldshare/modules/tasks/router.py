"""
Task management router for background job status and triggering.
"""

from fastapi import APIRouter, Depends

from celery.result import AsyncResult

from fieldshare.celery_app import celery_app
from fieldshare.modules.auth.router import get_current_user_id, get_repository
from fieldshare.modules.fields.services import FieldService
from fieldshare.repository import SqlAlchemyFieldRepository
from fieldshare.tasks import rebuild_all_adjacency, recompute_adjacency_task
from fieldshare.modules.tasks import schemas


router = APIRouter(prefix="/tasks", tags=["Tasks"])


@router.get("/status/{task_id}", response_model=schemas.TaskStatusResponse)
def get_task_status(task_id: str):
    """
    Get the status of a background task.

    - **task_id**: Celery task ID returned when task was triggered

    Returns task status: pending, started, success, failure, retry
    """
    result = AsyncResult(task_id, app=celery_app)

    response = {
        "task_id": task_id,
        "status": result.status.lower(),
        "result": None,
        "error": None,
    }

    if result.ready():
        if result.successful():
            response["result"] = result.get()
        else:
            response["error"] = str(result.result)

    return response


@router.post("/adjacency/{field_id}", response_model=schemas.TaskTriggerResponse)
def trigger_adjacency_recompute(
    field_id: str,
    user_id: str = Depends(get_current_user_id),
    repository: SqlAlchemyFieldRepository = Depends(get_repository),
):
    """
    Queue an adjacency rebuild for one of the caller's fields.
    Returns immediately; poll GET /tasks/status/{task_id}.
    """
    field = FieldService(repository).get_owned_field(field_id, user_id)
    task = recompute_adjacency_task.delay(field_id=field.id)

    return {
        "task_id": task.id,
        "status": "queued",
        "message": f"Adjacency recompute queued for field '{field.name}'",
        "check_status_url": f"/tasks/status/{task.id}",
    }


@router.post("/rebuild-adjacency", response_model=schemas.TaskTriggerResponse)
def trigger_adjacency_rebuild(
    user_id: str = Depends(get_current_user_id),
):
    """
    Queue a rebuild of every adjacency edge.
    Note: In production, this would be restricted to admins.
    """
    task = rebuild_all_adjacency.delay()

    return {
        "task_id": task.id,
        "status": "queued",
        "message": "Adjacency rebuild triggered for all fields",
        "check_status_url": f"/tasks/status/{task.id}",
    }
