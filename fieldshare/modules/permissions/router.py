"""
Neighbor visibility requests: ask, decide, revoke, and list.
"""

from typing import List

from fastapi import APIRouter, BackgroundTasks, Depends, status

from fieldshare.modules.auth.router import get_current_user_id, get_repository
from fieldshare.modules.notifications.notifier import get_notifier
from fieldshare.repository import SqlAlchemyFieldRepository
from . import schemas, services

router = APIRouter(prefix="/access-requests", tags=["Field Access"])


def get_access_service(
    background_tasks: BackgroundTasks,
    repository: SqlAlchemyFieldRepository = Depends(get_repository),
) -> services.AccessRequestService:
    # Notifications go out after the response, never inside the transaction
    return services.AccessRequestService(
        repository, notifier=get_notifier(), schedule=background_tasks.add_task
    )


@router.post("/", response_model=schemas.PermissionResponse, status_code=status.HTTP_201_CREATED)
def request_access(
    request: schemas.AccessRequestCreate,
    user_id: str = Depends(get_current_user_id),
    access_service: services.AccessRequestService = Depends(get_access_service),
):
    """
    Ask a neighbor to see one of their fields. Asking again while pending
    (or after approval) is a no-op; asking after a denial reopens it.
    """
    return access_service.request_access(user_id, request.owner_field_id, request.viewer_field_id)


@router.get("/pending", response_model=List[schemas.PendingRequestResponse])
def get_pending_requests(
    user_id: str = Depends(get_current_user_id),
    access_service: services.AccessRequestService = Depends(get_access_service),
):
    """Requests waiting on the caller's decision, newest first."""
    return access_service.pending_requests_for_owner(user_id)


@router.get("/mine", response_model=List[schemas.PermissionResponse])
def get_my_permissions(
    user_id: str = Depends(get_current_user_id),
    access_service: services.AccessRequestService = Depends(get_access_service),
):
    return access_service.permissions_for_user(user_id)


@router.get("/adjacent-needing-permission", response_model=schemas.AdjacentFieldsNeedingPermissionResponse)
def get_adjacent_fields_needing_permission(
    user_id: str = Depends(get_current_user_id),
    access_service: services.AccessRequestService = Depends(get_access_service),
):
    return {"fields": access_service.adjacent_fields_needing_permission(user_id)}


@router.post("/{permission_id}/respond", response_model=schemas.PermissionResponse)
def respond_to_request(
    permission_id: str,
    decision: schemas.AccessDecision,
    user_id: str = Depends(get_current_user_id),
    access_service: services.AccessRequestService = Depends(get_access_service),
):
    return access_service.respond(permission_id, decision.decision, user_id)


@router.post("/{permission_id}/revoke", response_model=schemas.PermissionResponse)
def revoke_access(
    permission_id: str,
    user_id: str = Depends(get_current_user_id),
    access_service: services.AccessRequestService = Depends(get_access_service),
):
    return access_service.revoke(permission_id, user_id)
