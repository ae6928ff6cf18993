import asyncio
import uvicorn
from fastapi import FastAPI

from pedibus.core.config import Settings, get_settings
from pedibus.core.logger import configure_logging, logger
from pedibus.presentation.api.server import create_app
from worker import AppWorker


async def start_fastapi(app: FastAPI, settings: Settings):
    """
    Uvicorn configuration and start-up.
    """
    config = uvicorn.Config(
        app,
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
        timeout_keep_alive=5
    )
    server = uvicorn.Server(config)
    await server.serve()


async def main():
    """
    Single entry point: the worker (scheduled jobs) and the API run side by side.
    """
    settings = get_settings()
    configure_logging(settings.log_level)

    worker = AppWorker(settings)
    worker.init_services()

    app = create_app(
        settings=settings,
        route_service=worker.route_service,
        scheduling_service=worker.scheduling_service,
        engine=worker.engine,
        ledger=worker.ledger,
    )

    logger.info("📡 Starting AppWorker + FastAPI")

    try:
        await worker.run()
        await start_fastapi(app, settings)
    except Exception as e:
        logger.error(f"❌ Critical error in the main loop: {e}")
        raise
    finally:
        await worker.shutdown()

if __name__ == "__main__":
    try:
        asyncio.run(main())
    except (KeyboardInterrupt, SystemExit):
        pass
