import logging
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from fieldshare.core.exceptions import (
    InvalidTransition, PermissionRequestError, ServiceProviderAccessNotFoundOrUnauthorized
)
from fieldshare.models import PROVIDER_ACCESS_TYPES, PROVIDER_CAPABILITIES, ServiceProviderAccess
from fieldshare.modules.notifications.notifier import LoggingNotifier, NotificationPort, send_quietly
from fieldshare.repository import FieldRepository

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: Dict[str, Tuple[str, ...]] = {
    "pending": ("approved", "denied", "revoked"),
    "approved": ("denied", "revoked"),
    "denied": ("approved",),
    "revoked": (),
}

# What a provider asks for when the request names no capabilities
DEFAULT_REQUESTED_CAPABILITIES = ["view_fields", "view_adjacent_fields", "view_weather"]


def is_grant_effective(grant: ServiceProviderAccess, now: Optional[datetime] = None) -> bool:
    return grant.is_effective(now)


def grant_label(season: Optional[str]) -> str:
    return f"service provider access for {season or 'current season'}"


def _run_now(func, *args):
    func(*args)


class ServiceProviderAccessService:
    """
    Farmers and their co-ops, custom sprayers and consultants.

    A provider asks a farmer for access (or a farmer grants it directly);
    only the farmer decides. Each request and decision texts the other side.
    """

    def __init__(
        self,
        repository: FieldRepository,
        notifier: Optional[NotificationPort] = None,
        schedule: Callable[..., Any] = _run_now,
    ):
        self.repository = repository
        self.notifier = notifier or LoggingNotifier()
        self.schedule = schedule

    def request_access(
        self,
        service_provider_id: str,
        farmer_id: str,
        access_type: str = "all_fields",
        permissions: Optional[Iterable[str]] = None,
        season: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> ServiceProviderAccess:
        provider = self.repository.get_user(service_provider_id)
        if provider is None or provider.user_role != "service_provider":
            raise PermissionRequestError("Only service providers can request field access")
        farmer = self.repository.get_user(farmer_id)
        if farmer is None or farmer.user_role != "farmer":
            raise PermissionRequestError("Invalid farmer ID")

        access = self._create(
            farmer_id, service_provider_id, access_type,
            permissions or DEFAULT_REQUESTED_CAPABILITIES, season, None, notes, "pending",
        )
        self.repository.commit()
        logger.info(f"Provider {service_provider_id} requested {access_type} access from farmer {farmer_id}")

        self._dispatch(self.notifier.notify_access_requested, farmer_id, provider.display_name, grant_label(season))
        return access

    def grant_access(
        self,
        farmer_id: str,
        service_provider_id: str,
        access_type: str = "all_fields",
        permissions: Optional[Iterable[str]] = None,
        season: Optional[str] = None,
        expires_at: Optional[datetime] = None,
        notes: Optional[str] = None,
        approve: bool = False,
    ) -> ServiceProviderAccess:
        if farmer_id == service_provider_id:
            raise PermissionRequestError("A farmer cannot grant access to themselves")
        provider = self.repository.get_user(service_provider_id)
        if provider is None or provider.user_role != "service_provider":
            raise PermissionRequestError("Service provider not found")

        access = self._create(
            farmer_id, service_provider_id, access_type, permissions or ["view_fields"],
            season, expires_at, notes, "approved" if approve else "pending",
        )
        self.repository.commit()
        logger.info(f"Farmer {farmer_id} granted {access_type} access to provider {service_provider_id} ({access.status})")
        return access

    def _create(
        self, farmer_id, service_provider_id, access_type, permissions, season, expires_at, notes, status
    ) -> ServiceProviderAccess:
        if access_type not in PROVIDER_ACCESS_TYPES:
            raise PermissionRequestError(f"Unknown access type '{access_type}'")
        capabilities = list(permissions)
        unknown = [c for c in capabilities if c not in PROVIDER_CAPABILITIES]
        if unknown:
            raise PermissionRequestError(f"Unknown capabilities: {', '.join(unknown)}")

        return self.repository.create_service_provider_access({
            "farmer_id": farmer_id,
            "service_provider_id": service_provider_id,
            "access_type": access_type,
            "permissions": capabilities,
            "season": season,
            "expires_at": expires_at,
            "notes": notes,
            "status": status,
        })

    def update_status(self, access_id: str, status: str, acting_user_id: str) -> ServiceProviderAccess:
        """Only the granting farmer may change a grant."""
        access = self.repository.get_service_provider_access(access_id)
        if access is None or access.farmer_id != acting_user_id:
            raise ServiceProviderAccessNotFoundOrUnauthorized()
        if status not in ALLOWED_TRANSITIONS.get(access.status, ()):
            raise InvalidTransition(access.status, status)

        updated = self.repository.update_service_provider_access_status(access_id, status)
        self.repository.commit()
        logger.info(f"Provider access {access_id} -> {status}")

        farmer = self.repository.get_user(acting_user_id)
        farmer_name = farmer.display_name if farmer else "The farmer"
        self._dispatch(
            self.notifier.notify_access_decided,
            updated.service_provider_id, farmer_name, grant_label(updated.season), status == "approved",
        )
        return updated

    def _dispatch(self, send: Callable[..., bool], *args) -> None:
        try:
            self.schedule(send_quietly, send, *args)
        except Exception as e:
            logger.error(f"Could not schedule notification {send.__name__}: {e}")

    def list_for_farmer(self, farmer_id: str) -> List[ServiceProviderAccess]:
        return self.repository.get_service_provider_access_for_farmer(farmer_id)

    def list_for_provider(self, provider_id: str) -> List[ServiceProviderAccess]:
        return self.repository.get_service_provider_access_for_provider(provider_id)
