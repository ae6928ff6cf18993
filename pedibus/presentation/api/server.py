from fastapi import Depends, FastAPI, Request, status
from fastapi.responses import JSONResponse

from pedibus import __version__
from pedibus.core.config import Settings
from pedibus.core.exceptions import AuthorizationError, NotFoundError, PedibusError, StateConflictError, ValidationError
from pedibus.core.logger import logger
from pedibus.presentation.api.api import get_activity_session_router, get_route_router
from pedibus.presentation.api.auth import get_api_key

_STATUS_BY_ERROR = (
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (StateConflictError, status.HTTP_409_CONFLICT),
    (AuthorizationError, status.HTTP_403_FORBIDDEN),
)


async def handle_pedibus_error(request: Request, exc: PedibusError) -> JSONResponse:
    status_code = next(
        (code for error_cls, code in _STATUS_BY_ERROR if isinstance(exc, error_cls)),
        status.HTTP_500_INTERNAL_SERVER_ERROR,
    )
    if status_code >= 500:
        logger.error(f"❌ Unhandled {exc.__class__.__name__} on {request.url.path}: {exc}")
    return JSONResponse(status_code=status_code, content={"detail": exc.message, "code": exc.code})


def create_app(
    settings: Settings,
    route_service,
    scheduling_service,
    engine,
    ledger,
):
    app = FastAPI(title="Pedibus API", version=__version__)
    app.state.settings = settings
    app.add_exception_handler(PedibusError, handle_pedibus_error)

    app.include_router(get_route_router(route_service), prefix="/api/routes", tags=["Routes"], dependencies=[Depends(get_api_key)])
    app.include_router(
        get_activity_session_router(scheduling_service, engine, ledger),
        prefix="/api/activity-sessions",
        tags=["Activity sessions"],
        dependencies=[Depends(get_api_key)],
    )

    return app
