from datetime import datetime, timedelta, timezone

import pytest
from httpx import ASGITransport, AsyncClient

from pedibus.application.services.event_publisher import EventPublisher
from pedibus.application.utils.background import drain_background_tasks
from pedibus.core.config import Settings
from pedibus.domain.enums.activity import ActivityType
from pedibus.domain.enums.people import PersonRole
from pedibus.domain.models.geo import Point, Waypoint
from pedibus.presentation.api.server import create_app
from worker import AppWorker

API_KEY = "test-api-key"
ADMIN = "admin-1"
INSTRUCTOR = "instructor-1"
SCHEDULED_AT = datetime(2025, 3, 10, 8, 0, tzinfo=timezone.utc)

# Straight path heading north through Braga, one vertex every ~111 m
LINE = [Point(lat=41.5500 + i * 0.001, lon=-8.4200) for i in range(7)]
STOPS = [
    Waypoint(name="Largo do Paço", lat=LINE[0].lat, lon=LINE[0].lon),
    Waypoint(name="Avenida Central", lat=LINE[3].lat, lon=LINE[3].lon),
    Waypoint(name="Escola Básica", lat=LINE[6].lat, lon=LINE[6].lon),
]


class FakeClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, minutes: int = 1) -> datetime:
        self.now += timedelta(minutes=minutes)
        return self.now


class RecordingEventPublisher(EventPublisher):
    """Keeps every outbound event as a (name, payload) tuple."""

    def __init__(self):
        self.events = []

    async def session_started(self, session, station):
        self.events.append(("session_started", station.station_id))

    async def arrived_at_station(self, session_id, station):
        self.events.append(("arrived_at_station", station.station_id))

    async def advanced_to_station(self, session_id, station):
        self.events.append(("advanced_to_station", station.station_id))

    async def session_ended(self, session):
        self.events.append(("session_ended", session.id))

    async def presence_changed(self, attendance, removed=False):
        self.events.append(("presence_changed", (attendance.person_id, attendance.direction.value, removed)))

    @property
    def names(self):
        return [name for name, _ in self.events]


# 1. Configuration over a throwaway SQLite file
@pytest.fixture(scope="function")
def settings(tmp_path):
    return Settings(
        _env_file=None,
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'pedibus.db'}",
        api_key=API_KEY,
        open_weather_api_key="",
    )


@pytest.fixture(scope="function")
def clock():
    return FakeClock(SCHEDULED_AT - timedelta(minutes=10))


@pytest.fixture(scope="function")
def events():
    return RecordingEventPublisher()


# 2. Fully wired services, tables created per test
@pytest.fixture(scope="function")
async def worker(settings, clock, events):
    worker = AppWorker(settings, events=events)
    worker.init_services()
    worker.engine.clock = clock
    worker.ledger.clock = clock
    worker.scheduling_service.clock = clock
    await worker.database.init_db()
    yield worker
    await drain_background_tasks()
    await worker.database.dispose()


@pytest.fixture(scope="function")
async def route(worker):
    return await worker.route_service.import_route("Linha Verde", ActivityType.PEDIBUS, LINE, STOPS)


@pytest.fixture(scope="function")
async def stations(worker, route):
    """Station ids of the route in stop order."""
    return [stop.station_id for stop in await worker.route_service.get_route_stops(route.id)]


@pytest.fixture(scope="function")
async def activity_session(worker, route):
    session = await worker.scheduling_service.schedule_session(route.id, SCHEDULED_AT)
    await worker.scheduling_service.assign_instructors(session.id, [INSTRUCTOR])
    return session


@pytest.fixture(scope="function")
def register_child(worker):
    async def _register(session_id, child_id, pick_up, drop_off, guardian_id="parent-1"):
        return await worker.scheduling_service.register(
            session_id, child_id, PersonRole.CHILD, pick_up, drop_off, guardian_id=guardian_id
        )
    return _register


# 3. Async HTTP client over the ASGI app
@pytest.fixture(scope="function")
async def client(worker, settings):
    app = create_app(
        settings=settings,
        route_service=worker.route_service,
        scheduling_service=worker.scheduling_service,
        engine=worker.engine,
        ledger=worker.ledger,
    )
    transport = ASGITransport(app=app)
    headers = {
        "X-API-Key": API_KEY,
        "Content-Type": "application/json"
    }
    async with AsyncClient(transport=transport, base_url="http://localhost:8080", headers=headers) as c:
        yield c
