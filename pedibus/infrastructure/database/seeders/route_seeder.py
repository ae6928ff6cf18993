import argparse
import asyncio
import sys
from pathlib import Path
from typing import List, Optional

from pedibus.application.services.route_service import RouteService
from pedibus.core.config import get_settings
from pedibus.core.exceptions import PedibusError
from pedibus.core.logger import configure_logging, logger
from pedibus.domain.enums.activity import ActivityType
from pedibus.domain.models.route import Route
from pedibus.infrastructure.database.database import Database
from pedibus.infrastructure.database.repositories.route_repository import RouteRepository
from pedibus.infrastructure.database.repositories.station_repository import StationRepository
from pedibus.infrastructure.parsers.kml_parser import KmlParser


async def seed_route(
    route_service: RouteService,
    path: Path,
    activity_type: ActivityType,
    name: Optional[str] = None,
    school_stop_names: Optional[List[str]] = None,
) -> Optional[Route]:
    """Import one KML/KMZ file as a route named after the file unless ``name`` is given."""
    name = name or path.stem
    logger.info(f"🚀 Seeding route '{name}' from {path.name}...")

    try:
        raw = KmlParser.parse_file(path)
        route = await route_service.import_route(
            name, activity_type, raw.polyline, raw.waypoints, school_stop_names
        )
    except (PedibusError, OSError) as e:
        logger.error(f"❌ Route '{name}' not imported: {e}")
        return None

    logger.info(f"✨ Route '{name}' seeded ({route.id})")
    return route


async def main(argv: Optional[List[str]] = None):
    parser = argparse.ArgumentParser(description="Import KML/KMZ route files")
    parser.add_argument("files", nargs="+", type=Path)
    parser.add_argument("--type", dest="activity_type", type=ActivityType, default=ActivityType.PEDIBUS)
    parser.add_argument("--school", action="append", dest="schools", help="stop name to flag as a school")
    args = parser.parse_args(argv)

    settings = get_settings()
    configure_logging(settings.log_level)
    database = Database(settings)
    await database.init_db()

    route_service = RouteService(
        RouteRepository(database.session_factory),
        StationRepository(database.session_factory),
    )
    try:
        for path in args.files:
            await seed_route(route_service, path, args.activity_type, school_stop_names=args.schools)
    finally:
        await database.dispose()


if __name__ == "__main__":
    if sys.platform == 'win32':
        asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())
    asyncio.run(main())
