from typing import Optional

from fastapi import APIRouter, Depends, Query

from .config import settings
from .analytics_logic import monthly_habit_summary, mvg_streak_board, weekly_summary
from .dates import format_day, parse_day_param
from .deps import get_habit_repository, get_project_repository
from .repositories import HabitRepository, ProjectRepository
from .schemas import MonthlyAnalyticsResponse, MvgStreaksResponse, WeeklyAnalyticsResponse


router = APIRouter(prefix="/api/analytics", tags=["Analytics"])


@router.get("/weekly", response_model=WeeklyAnalyticsResponse)
async def get_weekly_analytics(
    date_filter: Optional[str] = Query(default=None, alias="date"),
    habits_repo: HabitRepository = Depends(get_habit_repository),
    projects_repo: ProjectRepository = Depends(get_project_repository),
):
    """
    Hours worked per project for the Sunday..Saturday week containing ``date``,
    plus session and habit completion aggregates.
    """
    anchor = parse_day_param(date_filter)
    projects = await projects_repo.list_all()
    habits = await habits_repo.list_all()
    return weekly_summary(projects, habits, anchor)


@router.get("/monthly", response_model=MonthlyAnalyticsResponse)
async def get_monthly_analytics(
    date_filter: Optional[str] = Query(default=None, alias="date"),
    habits_repo: HabitRepository = Depends(get_habit_repository),
):
    anchor = parse_day_param(date_filter)
    habits = await habits_repo.list_all()
    return monthly_habit_summary(habits, anchor)


@router.get("/mvg-streaks", response_model=MvgStreaksResponse)
async def get_mvg_streaks(
    date_filter: Optional[str] = Query(default=None, alias="date"),
    projects_repo: ProjectRepository = Depends(get_project_repository),
):
    anchor = parse_day_param(date_filter)
    projects = await projects_repo.list_all()
    items = mvg_streak_board(projects, anchor, window=settings.get_mvg_streak_window_days())
    return MvgStreaksResponse(date=format_day(anchor), items=items)
