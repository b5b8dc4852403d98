from uuid import UUID
from fastapi import APIRouter, Depends

from ..core.dependencies import ScheduleServices, get_schedule_services
from ..schemas.timetable_schemas import (
    TimetableEntryCreate, TimetableEntryUpdate, TimetableEntryResponse,
    ReplaceScheduleRequest, TimetableResponse, RemoveEntryResponse,
)

router = APIRouter(prefix="/api/v1/timetables", tags=["Timetables"])


@router.get("/{timetable_id}", response_model=TimetableResponse)
async def get_timetable(
    timetable_id: UUID,
    services: ScheduleServices = Depends(get_schedule_services)
):
    return await services.timetables.get_timetable(timetable_id)


@router.post("/{timetable_id}/entries", response_model=TimetableEntryResponse, status_code=201)
async def add_entry(
    timetable_id: UUID,
    entry: TimetableEntryCreate,
    services: ScheduleServices = Depends(get_schedule_services)
):
    """Add a weekly slot and materialize its remaining occurrences this week"""
    return await services.timetables.add_entry(timetable_id, entry.model_dump())


@router.put("/{timetable_id}/entries/{entry_id}", response_model=TimetableEntryResponse)
async def update_entry(
    timetable_id: UUID,
    entry_id: UUID,
    changes: TimetableEntryUpdate,
    services: ScheduleServices = Depends(get_schedule_services)
):
    return await services.timetables.update_entry(
        timetable_id, entry_id, changes.model_dump(exclude_unset=True)
    )


@router.delete("/{timetable_id}/entries/{entry_id}", response_model=RemoveEntryResponse)
async def remove_entry(
    timetable_id: UUID,
    entry_id: UUID,
    services: ScheduleServices = Depends(get_schedule_services)
):
    removed = await services.timetables.remove_entry(timetable_id, entry_id)
    return {"message": "Timetable entry removed", "classes_removed": removed}


@router.put("/{timetable_id}/schedule", response_model=TimetableResponse)
async def replace_schedule(
    timetable_id: UUID,
    request: ReplaceScheduleRequest,
    services: ScheduleServices = Depends(get_schedule_services)
):
    """Replace every entry of the timetable"""
    return await services.timetables.replace_schedule(
        timetable_id, [entry.model_dump() for entry in request.entries]
    )
