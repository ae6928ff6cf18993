import asyncio
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from pedibus.core.config import Settings
from pedibus.core.logger import logger

# Domain services
from pedibus.application.services.activity_session_engine import ActivitySessionEngine
from pedibus.application.services.activity_stats_service import ActivityStatsService
from pedibus.application.services.badge_service import BadgeService
from pedibus.application.services.check_in_out_ledger import CheckInOutLedger
from pedibus.application.services.event_publisher import EventPublisher, LoggingEventPublisher
from pedibus.application.services.route_service import RouteService
from pedibus.application.services.scheduling_service import SchedulingService
from pedibus.application.services.session_progress import SessionStateReader
from pedibus.application.utils.background import drain_background_tasks

# Infrastructure
from pedibus.infrastructure.database.database import Database
from pedibus.infrastructure.database.repositories.activity_session_repository import ActivitySessionRepository
from pedibus.infrastructure.database.repositories.attendance_repository import AttendanceRepository
from pedibus.infrastructure.database.repositories.route_repository import RouteRepository
from pedibus.infrastructure.database.repositories.station_repository import StationRepository
from pedibus.infrastructure.database.repositories.stats_repository import BadgeRepository, StatsRepository
from pedibus.infrastructure.external.api.weather_api_service import WeatherApiService


class AppWorker:
    """
    Wires repositories and services together and runs the scheduled jobs.
    """

    def __init__(self, settings: Settings, events: EventPublisher = None):
        self.settings = settings
        self.scheduler = AsyncIOScheduler()
        self.database = Database(settings)
        self.events = events or LoggingEventPublisher()

        # Filled in init_services
        self.route_service = None
        self.scheduling_service = None
        self.stats_service = None
        self.badge_service = None
        self.engine = None
        self.ledger = None

    def init_services(self):
        logger.info("⚙️ Initialising AppWorker services...")
        session_factory = self.database.session_factory

        # Repositories
        sessions = ActivitySessionRepository(session_factory)
        routes = RouteRepository(session_factory)
        stations = StationRepository(session_factory)
        attendances = AttendanceRepository(session_factory)
        stats = StatsRepository(session_factory)
        badges = BadgeRepository(session_factory)

        reader = SessionStateReader(sessions, routes, stations, attendances)

        self.route_service = RouteService(routes, stations)
        self.scheduling_service = SchedulingService(self.settings, sessions, routes)
        self.stats_service = ActivityStatsService(sessions, routes, attendances, stats)
        self.badge_service = BadgeService(stats, badges)
        self.engine = ActivitySessionEngine(
            self.settings,
            reader,
            sessions,
            WeatherApiService(self.settings),
            self.events,
            self.stats_service,
            self.badge_service,
        )
        self.ledger = CheckInOutLedger(reader, attendances, self.events)

        logger.info("✅ All services initialised.")

    # --- SCHEDULED JOBS ---

    async def task_close_registrations(self):
        """Closes registrations of sessions that start within the configured window."""
        logger.info("🔔 [SCHEDULER] Closing registrations...")
        try:
            await self.scheduling_service.close_registrations()
        except Exception as e:
            logger.error(f"❌ Error in task_close_registrations: {e}")

    # --- LIFECYCLE ---

    async def run(self):
        await self.database.init_db()

        self.scheduler.add_job(
            self.task_close_registrations,
            trigger=IntervalTrigger(minutes=self.settings.registration_check_minutes),
            id='job_close_registrations',
        )

        # Initial pass so sessions close right after a restart
        logger.info("🚀 AppWorker started. Running initial jobs...")
        asyncio.create_task(self.task_close_registrations())

        self.scheduler.start()
        logger.info("✅ Scheduler running.")

    async def shutdown(self):
        """Controlled stop of the worker."""
        logger.info("🛑 Stopping AppWorker...")
        if self.scheduler.running:
            self.scheduler.shutdown()
        await drain_background_tasks()
        await self.database.dispose()
