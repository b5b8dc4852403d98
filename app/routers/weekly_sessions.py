from typing import Optional
from uuid import UUID
from datetime import date
from fastapi import APIRouter, Depends, HTTPException, Query

from ..core.cache import CacheManager, get_cache
from ..core.config import settings
from ..core.dependencies import ScheduleServices, get_schedule_services
from ..utils.cache_invalidation import week_cache_key
from ..utils.civil_calendar import monday_of
from ..schemas.weekly_session_schemas import (
    GenerateWeekRequest, GenerateWeekResponse, CancelClassRequest, RescheduleClassRequest,
    ExtraClassRequest, SessionClassResponse, WeekScheduleResponse, DeleteClassResponse,
)

router = APIRouter(prefix="/api/v1/weekly-sessions", tags=["Weekly Sessions"])


@router.post("/generate", response_model=GenerateWeekResponse)
async def generate_week(
    request: GenerateWeekRequest,
    services: ScheduleServices = Depends(get_schedule_services)
):
    """Materialize the week containing ``reference_date`` (default: this week)"""
    return await services.sessions.generate_for_week(
        request.reference_date,
        batch_id=request.batch_id,
        section_id=request.section_id,
    )


@router.get("/{batch_id}/{section_id}", response_model=WeekScheduleResponse)
async def get_week_schedule(
    batch_id: UUID,
    section_id: UUID,
    reference_date: Optional[date] = Query(None, alias="date"),
    services: ScheduleServices = Depends(get_schedule_services),
    cache: CacheManager = Depends(get_cache)
):
    """Week container and its classes; cached until a change touches the week"""
    monday = monday_of(reference_date or services.sessions.clock())
    cache_key = week_cache_key(batch_id, section_id, monday)
    cached = await cache.get(cache_key)
    if cached:
        return cached

    result = await services.sessions.get_session_for_week(batch_id, section_id, monday)
    if result is None:
        raise HTTPException(status_code=404, detail="No schedule generated for this week")

    payload = WeekScheduleResponse.model_validate(result, from_attributes=True).model_dump(mode="json")
    await cache.set(cache_key, payload, expire=settings.schedule_cache_ttl)
    return payload


@router.post("/classes/{class_id}/cancel", response_model=SessionClassResponse)
async def cancel_class(
    class_id: UUID,
    request: CancelClassRequest,
    services: ScheduleServices = Depends(get_schedule_services)
):
    return await services.changes.cancel_class(class_id, request.reason)


@router.post("/classes/{class_id}/reschedule", response_model=SessionClassResponse)
async def reschedule_class(
    class_id: UUID,
    request: RescheduleClassRequest,
    services: ScheduleServices = Depends(get_schedule_services)
):
    """Move a class; returns the new class"""
    return await services.changes.reschedule_class(
        class_id,
        request.new_date,
        request.new_start_time,
        request.new_end_time,
        request.room,
    )


@router.post("/classes/extra", response_model=SessionClassResponse, status_code=201)
async def add_extra_class(
    request: ExtraClassRequest,
    services: ScheduleServices = Depends(get_schedule_services)
):
    return await services.changes.add_extra_class(
        request.batch_id,
        request.section_id,
        request.subject_id,
        request.date,
        request.start_time,
        request.end_time,
        room=request.room,
        kind=request.kind,
    )


@router.delete("/classes/{class_id}", response_model=DeleteClassResponse)
async def delete_class(
    class_id: UUID,
    services: ScheduleServices = Depends(get_schedule_services)
):
    return await services.changes.delete_session_class(class_id)
