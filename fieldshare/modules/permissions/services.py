import logging
from typing import Any, Callable, Dict, List, Optional

from fieldshare.models import FieldVisibilityPermission
from fieldshare.modules.notifications.notifier import LoggingNotifier, NotificationPort, send_quietly
from fieldshare.modules.permissions.state_machine import (
    APPROVED, DENIED, PENDING, PermissionStateMachine
)
from fieldshare.repository import FieldRepository

logger = logging.getLogger(__name__)

Scheduler = Callable[..., Any]

# Neighbors still worth asking: never asked, still waiting, or turned down
NEEDS_PERMISSION_STATUSES = (None, PENDING, DENIED)


def _run_now(func, *args):
    func(*args)


class AccessRequestService:
    """
    Commits each permission transition, then tells the counterparty.

    `schedule` decides when the notification runs (FastAPI's
    BackgroundTasks.add_task in the routers, inline by default); either
    way a notification failure is logged and never undoes the transition.
    """

    def __init__(
        self,
        repository: FieldRepository,
        notifier: Optional[NotificationPort] = None,
        schedule: Scheduler = _run_now,
    ):
        self.repository = repository
        self.machine = PermissionStateMachine(repository)
        self.notifier = notifier or LoggingNotifier()
        self.schedule = schedule

    def request_access(
        self, viewer_user_id: str, owner_field_id: str, viewer_field_id: Optional[str] = None
    ) -> FieldVisibilityPermission:
        outcome = self.machine.request(viewer_user_id, owner_field_id, viewer_field_id)
        self.repository.commit()

        if outcome.changed:
            field = self.repository.get_field(owner_field_id)
            requester = self.repository.get_user(viewer_user_id)
            requester_name = requester.display_name if requester else "A neighboring farmer"
            self._dispatch(self.notifier.notify_access_requested, field.user_id, requester_name, field.name)
        return outcome.permission

    def respond(self, permission_id: str, decision: str, acting_user_id: str) -> FieldVisibilityPermission:
        permission = self.machine.respond(permission_id, decision, acting_user_id)
        self.repository.commit()

        field = self.repository.get_field(permission.owner_field_id)
        owner = self.repository.get_user(acting_user_id)
        owner_name = owner.display_name if owner else "The field owner"
        self._dispatch(
            self.notifier.notify_access_decided,
            permission.viewer_user_id, owner_name, field.name, decision == APPROVED,
        )
        return permission

    def revoke(self, permission_id: str, acting_user_id: str) -> FieldVisibilityPermission:
        permission = self.machine.revoke(permission_id, acting_user_id)
        self.repository.commit()
        return permission

    def auto_grant(self, owner_field_id: str, viewer_user_id: str, grant_source: str = "system") -> FieldVisibilityPermission:
        permission = self.machine.auto_grant(owner_field_id, viewer_user_id, grant_source)
        self.repository.commit()
        return permission

    def _dispatch(self, send: Callable[..., bool], *args) -> None:
        try:
            self.schedule(send_quietly, send, *args)
        except Exception as e:
            logger.error(f"Could not schedule notification {send.__name__}: {e}")

    # --- queries ---

    def pending_requests_for_owner(self, owner_user_id: str) -> List[Dict[str, Any]]:
        results = []
        for permission in self.repository.get_pending_permissions_for_owner(owner_user_id):
            field = self.repository.get_field(permission.owner_field_id)
            viewer = self.repository.get_user(permission.viewer_user_id)
            results.append({
                "permission": permission,
                "field_name": field.name if field else None,
                "viewer_name": viewer.display_name if viewer else None,
            })
        return results

    def permissions_for_user(self, user_id: str) -> List[FieldVisibilityPermission]:
        return self.repository.get_permissions_for_user(user_id)

    def adjacent_fields_needing_permission(self, user_id: str) -> List[Dict[str, Any]]:
        """
        Neighbors' adjacent fields the user cannot see yet, nearest first.
        Only the field id, the owner's public name and the distance are
        returned; no field attributes and no geometry.
        """
        permissions = {
            p.owner_field_id: p.status for p in self.repository.get_permissions_for_viewer(user_id)
        }
        results = []
        for field, distance in self.repository.get_adjacent_fields_with_distance(user_id):
            status = permissions.get(field.id)
            if status not in NEEDS_PERMISSION_STATUSES:
                continue
            owner = self.repository.get_user(field.user_id)
            results.append({
                "id": field.id,
                "owner": {
                    "id": field.user_id,
                    "first_name": owner.first_name if owner else None,
                    "last_name": owner.last_name if owner else None,
                },
                "distance": distance,
                "permission_status": status,
            })
        logger.info(f"{len(results)} adjacent fields need permission for user {user_id}")
        return results
