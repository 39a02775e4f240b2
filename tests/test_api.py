"""
API tests for the field sharing endpoints, run against an in-memory
database through FastAPI's TestClient.
"""

import pytest
from fastapi.testclient import TestClient

from fieldshare.database import get_db
from fieldshare.main import app

from conftest import km_square


@pytest.fixture
def client(session_factory):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def register(client, first_name, role="farmer"):
    response = client.post("/auth/register", json={"first_name": first_name, "last_name": "Test", "user_role": role})
    assert response.status_code == 201
    return response.json()["id"]


def as_user(user_id):
    return {"X-User-Id": user_id}


def field_payload(geometry, name="North 40", **overrides):
    payload = {
        "name": name,
        "geometry": geometry,
        "crop": "corn",
        "spray_types": ["enlist"],
        "variety": "DKC62-70",
        "season": "2025",
        "acres": 40,
        "notes": "Private note",
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def neighbors(client):
    """Vic owns field F; Uli farms the quarter next door."""
    vic, uli = register(client, "Vic"), register(client, "Uli")
    f = client.post("/fields/", json=field_payload(km_square(0, 0), name="Vic Home"), headers=as_user(vic))
    assert f.status_code == 201
    u = client.post("/fields/", json=field_payload(km_square(1, 0), name="Uli West"), headers=as_user(uli))
    assert u.status_code == 201
    return {"vic": vic, "uli": uli, "vic_field": f.json()["id"], "uli_field": u.json()["id"]}


class TestRegistration:

    def test_duplicate_phone_is_a_conflict(self, client):
        user = {"first_name": "Ada", "last_name": "Test", "phone_number": "+15155550199"}
        assert client.post("/auth/register", json=user).status_code == 201

        response = client.post("/auth/register", json={**user, "first_name": "Bea"})

        assert response.status_code == 409
        assert response.json()["code"] == "USER_ALREADY_EXISTS"


class TestFieldEndpoints:

    def test_unknown_user_is_rejected(self, client):
        response = client.get("/fields/", headers=as_user("nobody"))
        assert response.status_code == 401

    def test_create_returns_owner_view(self, client):
        user = register(client, "Ada")
        response = client.post("/fields/", json=field_payload(km_square(0, 0)), headers=as_user(user))

        body = response.json()
        assert response.status_code == 201
        assert body["access_level"] == "owner"
        assert body["notes"] == "Private note"
        assert body["geometry"] == km_square(0, 0)

    def test_point_geometry_is_rejected(self, client):
        user = register(client, "Ada")
        point = {"type": "Point", "coordinates": [-93.6, 42.0]}
        response = client.post("/fields/", json=field_payload(point), headers=as_user(user))
        assert response.status_code == 422

    def test_overlap_returns_conflict(self, client, neighbors):
        response = client.post(
            "/fields/", json=field_payload(km_square(0.6, 0), name="Greedy"), headers=as_user(neighbors["uli"])
        )

        assert response.status_code == 409
        assert response.json()["code"] == "FIELD_OVERLAP"
        # x 0.6-1.6 km cuts into both quarters
        assert sorted(response.json()["overlapping_fields"]) == ["Uli West", "Vic Home"]

    def test_check_overlap(self, client, neighbors):
        response = client.post(
            "/fields/check-overlap", json={"geometry": km_square(1, 0)}, headers=as_user(neighbors["vic"])
        )
        body = response.json()
        assert body["has_overlap"]
        assert body["overlapping_fields"] == ["Uli West"]
        assert body["overlaps"][0]["field_id"] == neighbors["uli_field"]
        assert body["overlaps"][0]["overlap_percentage"] == pytest.approx(100.0)

    def test_map_shows_neighbor_as_private(self, client, neighbors):
        response = client.get("/fields/map", headers=as_user(neighbors["uli"]))

        views = {v["id"]: v for v in response.json()}
        assert views[neighbors["uli_field"]]["access_level"] == "owner"
        neighbor_view = views[neighbors["vic_field"]]
        assert neighbor_view["access_level"] == "restricted"
        assert neighbor_view["name"] == "Private Field"
        assert neighbor_view["geometry"] == km_square(0, 0)
        assert neighbor_view["acres"] is None

    def test_adjacent_edges(self, client, neighbors):
        response = client.get(f"/fields/{neighbors['vic_field']}/adjacent", headers=as_user(neighbors["vic"]))
        edges = response.json()
        assert len(edges) == 1
        assert edges[0]["shared_boundary_length"] > 0

    def test_nearby(self, client, neighbors):
        response = client.get(
            "/fields/nearby", params={"lat": 42.0, "lng": -93.6, "radius_km": 3}, headers=as_user(neighbors["uli"])
        )
        levels = [item["field"]["access_level"] for item in response.json()]
        assert sorted(levels) == ["owner", "restricted"]

    def test_other_users_field_cannot_be_edited(self, client, neighbors):
        response = client.put(
            f"/fields/{neighbors['vic_field']}", json={"name": "Mine now"}, headers=as_user(neighbors["uli"])
        )
        assert response.status_code == 404

    def test_required_attribute_cannot_be_cleared(self, client, neighbors):
        response = client.put(
            f"/fields/{neighbors['vic_field']}", json={"crop": None}, headers=as_user(neighbors["vic"])
        )
        assert response.status_code == 422

        view = client.get(f"/fields/{neighbors['vic_field']}", headers=as_user(neighbors["vic"])).json()
        assert view["crop"] == "corn"

    def test_notes_can_be_cleared(self, client, neighbors):
        response = client.put(
            f"/fields/{neighbors['vic_field']}", json={"notes": None}, headers=as_user(neighbors["vic"])
        )
        assert response.status_code == 200
        assert response.json()["notes"] is None

    def test_fields_near_a_field(self, client, neighbors):
        response = client.get(
            f"/fields/{neighbors['uli_field']}/nearby", params={"radius_km": 3}, headers=as_user(neighbors["uli"])
        )
        nearby = response.json()
        assert [n["field"]["id"] for n in nearby] == [neighbors["vic_field"]]
        assert nearby[0]["field"]["access_level"] == "restricted"
        assert nearby[0]["distance_m"] == pytest.approx(1000, rel=0.02)

    def test_fields_near_someone_elses_field(self, client, neighbors):
        response = client.get(f"/fields/{neighbors['vic_field']}/nearby", headers=as_user(neighbors["uli"]))
        assert response.status_code == 404

    def test_delete_removes_edges(self, client, neighbors):
        response = client.delete(f"/fields/{neighbors['uli_field']}", headers=as_user(neighbors["uli"]))
        assert response.status_code == 204

        edges = client.get(f"/fields/{neighbors['vic_field']}/adjacent", headers=as_user(neighbors["vic"]))
        assert edges.json() == []


class TestAccessRequestFlow:

    def test_request_approve_and_view(self, client, neighbors):
        created = client.post(
            "/access-requests/",
            json={"owner_field_id": neighbors["vic_field"], "viewer_field_id": neighbors["uli_field"]},
            headers=as_user(neighbors["uli"]),
        )
        assert created.status_code == 201
        assert created.json()["status"] == "pending"

        pending = client.get("/access-requests/pending", headers=as_user(neighbors["vic"])).json()
        assert [p["permission"]["id"] for p in pending] == [created.json()["id"]]

        decided = client.post(
            f"/access-requests/{created.json()['id']}/respond",
            json={"decision": "approved"},
            headers=as_user(neighbors["vic"]),
        )
        assert decided.json()["status"] == "approved"

        view = client.get(f"/fields/{neighbors['vic_field']}", headers=as_user(neighbors["uli"])).json()
        assert view["access_level"] == "approved"
        assert view["crop"] == "corn"
        assert view["notes"] is None

    def test_permitted_fields(self, client, neighbors):
        created = client.post(
            "/access-requests/", json={"owner_field_id": neighbors["vic_field"]}, headers=as_user(neighbors["uli"])
        )
        client.post(
            f"/access-requests/{created.json()['id']}/respond",
            json={"decision": "approved"},
            headers=as_user(neighbors["vic"]),
        )

        fields = client.get("/fields/permitted", headers=as_user(neighbors["uli"])).json()

        assert [f["id"] for f in fields] == [neighbors["vic_field"]]
        assert fields[0]["access_level"] == "approved"
        assert fields[0]["notes"] is None

    def test_requester_cannot_approve_own_request(self, client, neighbors):
        created = client.post(
            "/access-requests/", json={"owner_field_id": neighbors["vic_field"]}, headers=as_user(neighbors["uli"])
        )

        response = client.post(
            f"/access-requests/{created.json()['id']}/respond",
            json={"decision": "approved"},
            headers=as_user(neighbors["uli"]),
        )
        missing = client.post(
            "/access-requests/no-such-id/respond", json={"decision": "approved"}, headers=as_user(neighbors["uli"])
        )

        assert response.status_code == 404
        assert response.json() == missing.json()

    def test_adjacent_fields_needing_permission(self, client, neighbors):
        response = client.get("/access-requests/adjacent-needing-permission", headers=as_user(neighbors["uli"]))
        fields = response.json()["fields"]
        assert [f["id"] for f in fields] == [neighbors["vic_field"]]
        assert fields[0]["owner"]["first_name"] == "Vic"


class TestServiceProviderEndpoints:

    def test_expired_grant_does_not_unlock_fields(self, client, neighbors):
        provider = register(client, "Agronomy Co", role="service_provider")
        grant = client.post(
            "/service-providers/access",
            json={"service_provider_id": provider, "approve": True, "expires_at": "2020-01-01T00:00:00"},
            headers=as_user(neighbors["vic"]),
        )
        assert grant.status_code == 201

        view = client.get(f"/fields/{neighbors['vic_field']}", headers=as_user(provider)).json()
        assert view["access_level"] == "restricted"

    def test_only_farmer_manages_grant(self, client, neighbors):
        provider = register(client, "Agronomy Co", role="service_provider")
        grant = client.post(
            "/service-providers/access",
            json={"service_provider_id": provider},
            headers=as_user(neighbors["vic"]),
        ).json()

        response = client.put(
            f"/service-providers/access/{grant['id']}", json={"status": "approved"}, headers=as_user(provider)
        )
        assert response.status_code == 404

        approved = client.put(
            f"/service-providers/access/{grant['id']}", json={"status": "approved"}, headers=as_user(neighbors["vic"])
        )
        assert approved.json()["status"] == "approved"
        fields = client.get("/service-providers/fields", headers=as_user(provider)).json()
        assert [f["id"] for f in fields] == [neighbors["vic_field"]]

    def test_provider_requests_and_farmer_approves(self, client, neighbors):
        provider = register(client, "Agronomy Co", role="service_provider")
        requested = client.post(
            "/service-providers/request-access",
            json={"farmer_id": neighbors["vic"], "season": "2026"},
            headers=as_user(provider),
        )
        assert requested.status_code == 201
        assert requested.json()["status"] == "pending"
        assert requested.json()["service_provider_id"] == provider

        approved = client.put(
            f"/service-providers/access/{requested.json()['id']}",
            json={"status": "approved"},
            headers=as_user(neighbors["vic"]),
        )

        assert approved.json()["status"] == "approved"
        view = client.get(f"/fields/{neighbors['vic_field']}", headers=as_user(provider)).json()
        assert view["access_level"] == "approved"

    def test_farmer_cannot_request_provider_access(self, client, neighbors):
        response = client.post(
            "/service-providers/request-access",
            json={"farmer_id": neighbors["vic"]},
            headers=as_user(neighbors["uli"]),
        )
        assert response.status_code == 400
