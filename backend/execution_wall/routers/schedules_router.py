"""
Execution schedule API routes

CRUD for the time windows the mode scheduler applies. Every change
triggers an immediate mode check.
"""

import logging
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from execution_wall.database import get_db
from execution_wall.exceptions import NotFoundError
from execution_wall.models import ExecutionSchedule
from execution_wall.schemas import ScheduleCreate, ScheduleResponse, ScheduleUpdate
from execution_wall.services.audit_service import record_audit
from execution_wall.services.mode_scheduler import mode_scheduler

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/schedules", tags=["schedules"])


async def _get_schedule(db: AsyncSession, schedule_id: int) -> ExecutionSchedule:
    schedule = await db.get(ExecutionSchedule, schedule_id)
    if schedule is None:
        raise NotFoundError("Schedule not found")
    return schedule


@router.get("", response_model=List[ScheduleResponse])
async def list_schedules(db: AsyncSession = Depends(get_db)):
    result = await db.execute(
        select(ExecutionSchedule).order_by(ExecutionSchedule.priority.desc(), ExecutionSchedule.id)
    )
    return result.scalars().all()


@router.get("/{schedule_id}", response_model=ScheduleResponse)
async def get_schedule(schedule_id: int, db: AsyncSession = Depends(get_db)):
    return await _get_schedule(db, schedule_id)


@router.post("", response_model=ScheduleResponse, status_code=201)
async def create_schedule(request: ScheduleCreate, db: AsyncSession = Depends(get_db)):
    schedule = ExecutionSchedule(**request.model_dump())
    db.add(schedule)
    await db.flush()
    record_audit(db, "schedule_created", details={"schedule_id": schedule.id, **request.model_dump()})
    await db.commit()
    await db.refresh(schedule)

    logger.info(f"✅ Schedule created: {schedule.name} ({schedule.start_time}-{schedule.end_time} → {schedule.execution_mode})")
    await mode_scheduler.trigger_check()
    return schedule


@router.put("/{schedule_id}", response_model=ScheduleResponse)
async def update_schedule(schedule_id: int, request: ScheduleUpdate, db: AsyncSession = Depends(get_db)):
    schedule = await _get_schedule(db, schedule_id)
    changes = request.model_dump(exclude_unset=True, exclude_none=True)
    for field, value in changes.items():
        setattr(schedule, field, value)

    record_audit(db, "schedule_updated", details={"schedule_id": schedule.id, **changes})
    await db.commit()
    await db.refresh(schedule)

    await mode_scheduler.trigger_check()
    return schedule


@router.delete("/{schedule_id}")
async def delete_schedule(schedule_id: int, db: AsyncSession = Depends(get_db)):
    schedule = await _get_schedule(db, schedule_id)
    name = schedule.name
    await db.delete(schedule)
    record_audit(db, "schedule_deleted", details={"schedule_id": schedule_id, "name": name})
    await db.commit()

    logger.info(f"🗑️ Schedule deleted: {name}")
    await mode_scheduler.trigger_check()
    return {"message": f"Schedule '{name}' deleted"}
