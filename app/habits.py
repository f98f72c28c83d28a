import logging

from fastapi import APIRouter, Depends, Request

from .completion import compute_streak
from .deps import get_habit_repository, get_today
from .errors import not_found
from .observability import log_ctx, log_ctx_json
from .repositories import HabitRepository
from .schemas import (
    HabitCreate,
    HabitResponse,
    HabitUpdate,
    MessageResponse,
    ResetDailyResponse,
    dump_completion_records,
)
from .tracking import TrackableEntity, reset_daily, toggle_entity


logger = logging.getLogger("pulseboard-habits")

router = APIRouter(prefix="/api/habits", tags=["Habits"])


@router.get("", response_model=list[HabitResponse])
async def list_habits(repo: HabitRepository = Depends(get_habit_repository)):
    return await repo.list_all()


@router.post("/reset-daily", response_model=ResetDailyResponse)
async def reset_daily_habits(
    request: Request,
    repo: HabitRepository = Depends(get_habit_repository),
):
    habits = await repo.list_all()
    entities = [TrackableEntity.from_mapping(habit, entity_id=habit["id"]) for habit in habits]
    reset_count = await repo.save_completed_flags(reset_daily(entities))
    logger.info(
        "HABITS_RESET_DAILY context=%s",
        log_ctx_json(log_ctx(request, user_id=repo.user_id, extra={"reset_count": reset_count})),
    )
    return ResetDailyResponse(message="Daily habits reset successfully", resetCount=reset_count)


@router.get("/{habit_id}", response_model=HabitResponse)
async def get_habit(habit_id: str, repo: HabitRepository = Depends(get_habit_repository)):
    habit = await repo.get(habit_id)
    if habit is None:
        raise not_found("Habit")
    return habit


@router.post("", response_model=HabitResponse, status_code=201)
async def create_habit(
    payload: HabitCreate,
    request: Request,
    repo: HabitRepository = Depends(get_habit_repository),
):
    habit = await repo.create(payload.model_dump())
    logger.info(
        "HABIT_CREATED context=%s",
        log_ctx_json(log_ctx(request, user_id=repo.user_id, entity_id=habit["id"])),
    )
    return habit


@router.put("/{habit_id}", response_model=HabitResponse)
async def update_habit(
    habit_id: str,
    payload: HabitUpdate,
    repo: HabitRepository = Depends(get_habit_repository),
    today: str = Depends(get_today),
):
    fields = payload.model_dump(exclude={"completed", "completionHistory"})
    history = TrackableEntity.from_mapping(
        {"completionHistory": dump_completion_records(payload.completionHistory)}
    ).completion_history
    # The cached streak is always derived from the stored history.
    entity = TrackableEntity(
        id=habit_id,
        completed=payload.completed,
        streak=compute_streak(history, today),
        completion_history=history,
    )
    habit = await repo.update(habit_id, fields, entity)
    if habit is None:
        raise not_found("Habit")
    return habit


@router.put("/{habit_id}/toggle", response_model=HabitResponse)
async def toggle_habit(
    habit_id: str,
    request: Request,
    repo: HabitRepository = Depends(get_habit_repository),
    today: str = Depends(get_today),
):
    habit = await repo.get(habit_id)
    if habit is None:
        raise not_found("Habit")

    toggled = toggle_entity(TrackableEntity.from_mapping(habit, entity_id=habit["id"]), today)
    saved = await repo.save_tracking(toggled)
    if saved is None:
        raise not_found("Habit")

    logger.info(
        "HABIT_TOGGLED context=%s",
        log_ctx_json(
            log_ctx(
                request,
                user_id=repo.user_id,
                entity_id=habit["id"],
                extra={"completed": toggled.completed, "streak": toggled.streak, "date": today},
            )
        ),
    )
    return saved


@router.delete("/{habit_id}", response_model=MessageResponse)
async def delete_habit(habit_id: str, repo: HabitRepository = Depends(get_habit_repository)):
    deleted = await repo.delete(habit_id)
    if not deleted:
        raise not_found("Habit")
    return MessageResponse(message="Habit deleted successfully")
