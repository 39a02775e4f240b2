"""
Shared fixtures: an in-memory SQLite database, a repository on top of it,
and factories for users and fields laid out on a km grid.
"""

import math
from typing import Any, Dict, List, Optional

import pytest
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from fieldshare.database import build_engine
from fieldshare.models import Base
from fieldshare.modules.notifications.notifier import NotificationPort
from fieldshare.repository import SqlAlchemyFieldRepository

# Grid origin somewhere in central Iowa
ORIGIN_LNG = -93.6
ORIGIN_LAT = 42.0
KM_PER_DEG_LAT = 111.32
KM_PER_DEG_LNG = 111.32 * math.cos(math.radians(ORIGIN_LAT))


def km_to_lnglat(x_km: float, y_km: float) -> List[float]:
    return [ORIGIN_LNG + x_km / KM_PER_DEG_LNG, ORIGIN_LAT + y_km / KM_PER_DEG_LAT]


def km_polygon(corners) -> Dict[str, Any]:
    """Closed GeoJSON Polygon from (x_km, y_km) corners."""
    ring = [km_to_lnglat(x, y) for x, y in corners]
    ring.append(list(ring[0]))
    return {"type": "Polygon", "coordinates": [ring]}


def km_square(x0: float, y0: float, size: float = 1.0) -> Dict[str, Any]:
    return km_polygon([(x0, y0), (x0, y0 + size), (x0 + size, y0 + size), (x0 + size, y0)])


def square_around(lng: float, lat: float, half_deg: float = 0.0005) -> Dict[str, Any]:
    ring = [
        [lng - half_deg, lat - half_deg],
        [lng - half_deg, lat + half_deg],
        [lng + half_deg, lat + half_deg],
        [lng + half_deg, lat - half_deg],
        [lng - half_deg, lat - half_deg],
    ]
    return {"type": "Polygon", "coordinates": [ring]}


class RecordingNotifier(NotificationPort):
    """Keeps every notification instead of sending it."""

    def __init__(self):
        self.calls = []

    def notify_access_requested(self, owner_user_id, requester_name, field_name):
        self.calls.append(("requested", owner_user_id, requester_name, field_name))
        return True

    def notify_access_decided(self, viewer_user_id, owner_name, field_name, approved):
        self.calls.append(("decided", viewer_user_id, owner_name, field_name, approved))
        return True


@pytest.fixture
def engine():
    engine = build_engine("sqlite://", poolclass=StaticPool)
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def repo(db):
    return SqlAlchemyFieldRepository(db)


@pytest.fixture
def make_user(repo):
    counter = {"n": 0}

    def _make_user(first_name: Optional[str] = None, user_role: str = "farmer", **values):
        counter["n"] += 1
        user = repo.create_user(
            first_name=first_name or f"Farmer{counter['n']}",
            last_name="Test",
            phone_number=f"+1515555{counter['n']:04d}",
            user_role=user_role,
            **values,
        )
        repo.commit()
        return user

    return _make_user


@pytest.fixture
def make_field(repo):
    def _make_field(owner, geometry: Optional[Dict[str, Any]], name: str = "Field", **values):
        data = {
            "user_id": owner.id,
            "name": name,
            "geometry": geometry,
            "crop": "corn",
            "spray_types": ["enlist"],
            "variety": "P1197",
            "season": "2025",
            "status": "planted",
            "acres": 247.1,
            "notes": "Tile drained in 2019",
        }
        data.update(values)
        field = repo.create_field(data)
        repo.commit()
        return field

    return _make_field
