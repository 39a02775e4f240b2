"""
Visibility permission lifecycle for one (owner field -> viewer user) pair.

    request           respond                 revoke
    (none) -> pending -> approved  ----------->  revoked
                      -> denied -> (re-request) pending

`auto_granted` is set only by system logic (auto_grant) and counts as
approved. The machine flushes through the repository; committing and
notifying are the caller's job.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from fieldshare.core.exceptions import (
    FieldNotFound, InvalidTransition, PermissionNotFoundOrUnauthorized, PermissionRequestError
)
from fieldshare.models import FieldVisibilityPermission
from fieldshare.modules.fields.projection import is_permission_effective
from fieldshare.repository import FieldRepository

logger = logging.getLogger(__name__)

PENDING = "pending"
APPROVED = "approved"
DENIED = "denied"
REVOKED = "revoked"
AUTO_GRANTED = "auto_granted"

DECISIONS = (APPROVED, DENIED)
SYSTEM_GRANT_SOURCES = ("auto_on_signup", "system")


@dataclass
class RequestOutcome:
    permission: FieldVisibilityPermission
    changed: bool  # created or reopened, as opposed to returned as-is


class PermissionStateMachine:
    def __init__(self, repository: FieldRepository):
        self.repository = repository

    @staticmethod
    def is_effective(permission: Optional[FieldVisibilityPermission]) -> bool:
        return is_permission_effective(permission)

    def request(
        self, viewer_user_id: str, owner_field_id: str, viewer_field_id: Optional[str] = None
    ) -> RequestOutcome:
        """
        Ask for access: creates a pending row, reopens a denied one, and
        otherwise returns the existing row untouched.
        """
        field = self.repository.get_field(owner_field_id)
        if field is None:
            raise FieldNotFound(owner_field_id)
        if field.user_id == viewer_user_id:
            raise PermissionRequestError("You already own this field")

        permission, created = self.repository.get_or_create_permission(
            owner_field_id=owner_field_id,
            owner_user_id=field.user_id,
            viewer_user_id=viewer_user_id,
            viewer_field_id=viewer_field_id,
            status=PENDING,
            grant_source="manual",
        )
        if created:
            logger.info(f"Access request {permission.id}: user {viewer_user_id} -> field {owner_field_id}")
            return RequestOutcome(permission, changed=True)

        if permission.status == DENIED:
            permission = self.repository.update_permission_status(permission.id, PENDING)
            logger.info(f"Access request {permission.id} reopened after denial")
            return RequestOutcome(permission, changed=True)

        return RequestOutcome(permission, changed=False)

    def _owned_permission(self, permission_id: str, acting_user_id: str) -> FieldVisibilityPermission:
        permission = self.repository.get_permission(permission_id)
        if permission is None or permission.owner_user_id != acting_user_id:
            raise PermissionNotFoundOrUnauthorized()
        return permission

    def respond(self, permission_id: str, decision: str, acting_user_id: str) -> FieldVisibilityPermission:
        """Owner decides a pending request: approved or denied."""
        permission = self._owned_permission(permission_id, acting_user_id)
        if decision not in DECISIONS:
            raise InvalidTransition(permission.status, decision)
        if permission.status != PENDING:
            raise InvalidTransition(permission.status, decision)

        updated = self.repository.update_permission_status(permission.id, decision)
        logger.info(f"Access request {permission.id} {decision} by owner {acting_user_id}")
        return updated

    def revoke(self, permission_id: str, acting_user_id: str) -> FieldVisibilityPermission:
        """Owner withdraws an approved grant."""
        permission = self._owned_permission(permission_id, acting_user_id)
        if permission.status != APPROVED:
            raise InvalidTransition(permission.status, REVOKED)

        updated = self.repository.update_permission_status(permission.id, REVOKED)
        logger.info(f"Access grant {permission.id} revoked by owner {acting_user_id}")
        return updated

    def auto_grant(
        self, owner_field_id: str, viewer_user_id: str, grant_source: str = "system"
    ) -> FieldVisibilityPermission:
        """
        System-only grant. Creates an auto_granted row or upgrades a pending
        one; an owner's explicit denial or revocation is left standing.
        """
        if grant_source not in SYSTEM_GRANT_SOURCES:
            raise PermissionRequestError(f"'{grant_source}' is not a system grant source")
        field = self.repository.get_field(owner_field_id)
        if field is None:
            raise FieldNotFound(owner_field_id)

        permission, created = self.repository.get_or_create_permission(
            owner_field_id=owner_field_id,
            owner_user_id=field.user_id,
            viewer_user_id=viewer_user_id,
            status=AUTO_GRANTED,
            grant_source=grant_source,
        )
        if not created and permission.status == PENDING:
            permission = self.repository.update_permission_status(permission.id, AUTO_GRANTED)
            permission.grant_source = grant_source
        logger.info(f"Auto-grant ({grant_source}) field {owner_field_id} -> user {viewer_user_id}: {permission.status}")
        return permission
