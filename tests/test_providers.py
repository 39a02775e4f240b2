"""
Tests for farmer-to-service-provider grants.
"""

from datetime import datetime, timedelta

import pytest

from fieldshare.core.exceptions import (
    InvalidTransition, PermissionRequestError, ServiceProviderAccessNotFoundOrUnauthorized
)
from fieldshare.modules.providers.services import ServiceProviderAccessService, is_grant_effective

from conftest import RecordingNotifier


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def service(repo, notifier):
    return ServiceProviderAccessService(repo, notifier=notifier)


@pytest.fixture
def farmer(make_user):
    return make_user("Gail")


@pytest.fixture
def provider(make_user):
    return make_user("Prairie Ag", user_role="service_provider")


class TestGrantAccess:

    def test_new_grant_is_pending(self, service, farmer, provider):
        grant = service.grant_access(farmer.id, provider.id)
        assert grant.status == "pending"
        assert grant.permissions == ["view_fields"]
        assert not is_grant_effective(grant)

    def test_grant_can_be_approved_up_front(self, service, farmer, provider):
        grant = service.grant_access(farmer.id, provider.id, approve=True)
        assert grant.status == "approved"
        assert is_grant_effective(grant)

    def test_grantee_must_be_a_service_provider(self, service, farmer, make_user):
        other_farmer = make_user("Hal")
        with pytest.raises(PermissionRequestError):
            service.grant_access(farmer.id, other_farmer.id)

    def test_unknown_capability(self, service, farmer, provider):
        with pytest.raises(PermissionRequestError, match="export_everything"):
            service.grant_access(farmer.id, provider.id, permissions=["export_everything"])

    def test_expiry(self, service, farmer, provider):
        now = datetime(2026, 3, 1)
        grant = service.grant_access(farmer.id, provider.id, approve=True, expires_at=now)
        assert is_grant_effective(grant, now)
        assert not is_grant_effective(grant, now + timedelta(seconds=1))


class TestUpdateStatus:

    def test_farmer_approves_then_revokes(self, service, farmer, provider):
        grant = service.grant_access(farmer.id, provider.id)
        assert service.update_status(grant.id, "approved", farmer.id).status == "approved"
        assert service.update_status(grant.id, "revoked", farmer.id).status == "revoked"

    def test_revoked_is_final(self, service, farmer, provider):
        grant = service.grant_access(farmer.id, provider.id, approve=True)
        service.update_status(grant.id, "revoked", farmer.id)
        with pytest.raises(InvalidTransition):
            service.update_status(grant.id, "approved", farmer.id)

    def test_provider_cannot_approve_itself(self, service, farmer, provider):
        grant = service.grant_access(farmer.id, provider.id)
        with pytest.raises(ServiceProviderAccessNotFoundOrUnauthorized):
            service.update_status(grant.id, "approved", provider.id)

    def test_listing(self, service, farmer, provider):
        grant = service.grant_access(farmer.id, provider.id)
        assert [g.id for g in service.list_for_farmer(farmer.id)] == [grant.id]
        assert [g.id for g in service.list_for_provider(provider.id)] == [grant.id]

    def test_decision_texts_the_provider(self, service, notifier, farmer, provider):
        grant = service.grant_access(farmer.id, provider.id, season="2026")
        service.update_status(grant.id, "approved", farmer.id)
        assert notifier.calls == [("decided", provider.id, "Gail Test", "service provider access for 2026", True)]

    def test_denial_texts_the_provider(self, service, notifier, farmer, provider):
        grant = service.grant_access(farmer.id, provider.id)
        service.update_status(grant.id, "denied", farmer.id)
        assert notifier.calls[-1][-1] is False

    def test_rejected_transition_sends_nothing(self, service, notifier, farmer, provider):
        grant = service.grant_access(farmer.id, provider.id, approve=True)
        service.update_status(grant.id, "revoked", farmer.id)
        notifier.calls.clear()
        with pytest.raises(InvalidTransition):
            service.update_status(grant.id, "approved", farmer.id)
        assert notifier.calls == []


class TestProviderRequest:

    def test_provider_asks_farmer(self, service, notifier, farmer, provider):
        access = service.request_access(provider.id, farmer.id, season="2026")

        assert access.status == "pending"
        assert access.farmer_id == farmer.id
        assert access.permissions == ["view_fields", "view_adjacent_fields", "view_weather"]
        assert notifier.calls == [("requested", farmer.id, "Prairie Ag Test", "service provider access for 2026")]

    def test_pending_request_unlocks_nothing(self, service, farmer, provider):
        assert not is_grant_effective(service.request_access(provider.id, farmer.id))

    def test_farmer_approves_a_request(self, service, farmer, provider):
        access = service.request_access(provider.id, farmer.id)
        assert is_grant_effective(service.update_status(access.id, "approved", farmer.id))

    def test_only_service_providers_ask(self, service, notifier, farmer, make_user):
        neighbor = make_user("Hal")
        with pytest.raises(PermissionRequestError, match="Only service providers"):
            service.request_access(neighbor.id, farmer.id)
        assert notifier.calls == []

    def test_target_must_be_a_farmer(self, service, provider, make_user):
        other_provider = make_user("Seed Co", user_role="service_provider")
        with pytest.raises(PermissionRequestError, match="Invalid farmer"):
            service.request_access(provider.id, other_provider.id)

    def test_notification_failure_keeps_the_request(self, repo, farmer, provider):
        def broken(*args):
            raise RuntimeError("SMS gateway down")

        notifier = RecordingNotifier()
        notifier.notify_access_requested = broken
        access = ServiceProviderAccessService(repo, notifier=notifier).request_access(provider.id, farmer.id)

        assert repo.get_service_provider_access(access.id).status == "pending"
