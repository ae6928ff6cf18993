from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field

from pedibus.application.services.activity_session_engine import ActivitySessionEngine
from pedibus.application.services.check_in_out_ledger import CheckInOutLedger
from pedibus.application.services.route_service import RouteService
from pedibus.application.services.scheduling_service import SchedulingService
from pedibus.domain.enums.activity import ActivityType
from pedibus.domain.enums.people import PersonRole
from pedibus.domain.models.activity_session import (
    ActivitySession,
    InstructorAssignment,
    SessionStatusInfo,
    StationInfo,
    StationRoster,
)
from pedibus.domain.models.attendance import Attendance, Registration
from pedibus.domain.models.geo import Point, Waypoint
from pedibus.domain.models.identity import Caller
from pedibus.domain.models.route import IngestedRoute, Route, RouteStopDetail
from pedibus.presentation.api.auth import get_admin, get_current_caller


class RoutePathRequest(BaseModel):
    activity_type: ActivityType = ActivityType.PEDIBUS
    polyline: List[Point] = Field(..., min_length=1)
    waypoints: List[Waypoint]


class ImportRouteRequest(RoutePathRequest):
    name: str = Field(..., min_length=1, max_length=120)
    school_stop_names: Optional[List[str]] = Field(None, description="Stops to flag as schools; defaults to the last one")


class ScheduleSessionRequest(BaseModel):
    route_id: str
    scheduled_at: datetime
    activity_type: Optional[ActivityType] = None


class AssignInstructorsRequest(BaseModel):
    instructor_ids: List[str] = Field(..., min_length=1)


class RegistrationRequest(BaseModel):
    person_id: str
    role: PersonRole
    pick_up_station_id: Optional[str] = None
    drop_off_station_id: Optional[str] = None


class PresenceRequest(BaseModel):
    person_id: str


def get_route_router(route_service: RouteService) -> APIRouter:
    router = APIRouter()

    @router.get("", response_model=List[Route])
    async def list_routes():
        return await route_service.list_routes()

    @router.post("", response_model=Route, status_code=status.HTTP_201_CREATED, dependencies=[Depends(get_admin)])
    async def import_route(body: ImportRouteRequest):
        return await route_service.import_route(
            body.name, body.activity_type, body.polyline, body.waypoints, body.school_stop_names
        )

    @router.post("/preview", response_model=IngestedRoute)
    async def preview_route(body: RoutePathRequest):
        return route_service.preview(body.activity_type, body.polyline, body.waypoints)

    @router.get("/{route_id}", response_model=Route)
    async def get_route(route_id: str):
        return await route_service.get_route(route_id)

    @router.get("/{route_id}/stops", response_model=List[RouteStopDetail])
    async def list_route_stops(route_id: str):
        return await route_service.get_route_stops(route_id)

    return router


def get_activity_session_router(
    scheduling_service: SchedulingService,
    engine: ActivitySessionEngine,
    ledger: CheckInOutLedger,
) -> APIRouter:
    router = APIRouter()

    # ==== Scheduling ====
    @router.post("", response_model=ActivitySession, status_code=status.HTTP_201_CREATED, dependencies=[Depends(get_admin)])
    async def schedule_session(body: ScheduleSessionRequest):
        return await scheduling_service.schedule_session(body.route_id, body.scheduled_at, body.activity_type)

    @router.get("/{session_id}", response_model=ActivitySession)
    async def get_session(session_id: str):
        return await scheduling_service.get_session(session_id)

    @router.post("/{session_id}/instructors", response_model=List[InstructorAssignment], dependencies=[Depends(get_admin)])
    async def assign_instructors(session_id: str, body: AssignInstructorsRequest):
        return await scheduling_service.assign_instructors(session_id, body.instructor_ids)

    @router.delete("/{session_id}/instructors/{instructor_id}", status_code=status.HTTP_204_NO_CONTENT, dependencies=[Depends(get_admin)])
    async def unassign_instructor(session_id: str, instructor_id: str):
        await scheduling_service.unassign_instructor(session_id, instructor_id)

    @router.get("/{session_id}/registrations", response_model=List[Registration], dependencies=[Depends(get_admin)])
    async def list_registrations(session_id: str):
        return await scheduling_service.list_registrations(session_id)

    @router.post("/{session_id}/registrations", response_model=Registration, status_code=status.HTTP_201_CREATED)
    async def register(session_id: str, body: RegistrationRequest, caller: Caller = Depends(get_current_caller)):
        return await scheduling_service.register(
            session_id,
            body.person_id,
            body.role,
            pick_up_station_id=body.pick_up_station_id,
            drop_off_station_id=body.drop_off_station_id,
            caller=caller,
        )

    @router.delete("/{session_id}/registrations/{person_id}", status_code=status.HTTP_204_NO_CONTENT)
    async def unregister(session_id: str, person_id: str, caller: Caller = Depends(get_current_caller)):
        await scheduling_service.unregister(session_id, person_id, caller=caller)

    # ==== Progression ====
    @router.post("/{session_id}/actions/start", response_model=StationInfo)
    async def start_session(session_id: str, caller: Caller = Depends(get_current_caller)):
        return await engine.start(session_id, caller.person_id)

    @router.post("/{session_id}/actions/arrive", response_model=StationInfo)
    async def arrive_at_station(session_id: str, caller: Caller = Depends(get_current_caller)):
        return await engine.arrive(session_id, caller.person_id)

    @router.post("/{session_id}/actions/advance", response_model=StationInfo)
    async def advance_to_next_station(session_id: str, caller: Caller = Depends(get_current_caller)):
        return await engine.advance(session_id, caller.person_id)

    @router.post("/{session_id}/actions/end", response_model=ActivitySession)
    async def end_session(session_id: str, caller: Caller = Depends(get_current_caller)):
        return await engine.end(session_id, caller.person_id)

    @router.get("/{session_id}/status", response_model=SessionStatusInfo)
    async def get_status(session_id: str, caller: Caller = Depends(get_current_caller)):
        return await engine.status(session_id, caller)

    @router.get("/{session_id}/stations", response_model=List[StationInfo])
    async def list_stations(session_id: str, caller: Caller = Depends(get_current_caller)):
        return await engine.list_stations(session_id, caller)

    @router.get("/{session_id}/roster", response_model=StationRoster)
    async def get_roster(session_id: str, caller: Caller = Depends(get_current_caller)):
        return await engine.roster(session_id, caller)

    # ==== Presence ====
    @router.post("/{session_id}/check-in", response_model=Attendance, status_code=status.HTTP_201_CREATED)
    async def check_in(session_id: str, body: PresenceRequest, caller: Caller = Depends(get_current_caller)):
        return await ledger.check_in(session_id, body.person_id, caller.person_id)

    @router.delete("/{session_id}/check-in/{person_id}", response_model=Attendance)
    async def undo_check_in(session_id: str, person_id: str, caller: Caller = Depends(get_current_caller)):
        return await ledger.undo_check_in(session_id, person_id, caller.person_id)

    @router.post("/{session_id}/check-out", response_model=Attendance, status_code=status.HTTP_201_CREATED)
    async def check_out(session_id: str, body: PresenceRequest, caller: Caller = Depends(get_current_caller)):
        return await ledger.check_out(session_id, body.person_id, caller.person_id)

    @router.delete("/{session_id}/check-out/{person_id}", response_model=Attendance)
    async def undo_check_out(session_id: str, person_id: str, caller: Caller = Depends(get_current_caller)):
        return await ledger.undo_check_out(session_id, person_id, caller.person_id)

    return router
