import math
from datetime import date, timedelta
from typing import Optional

from .completion import find_by_date, is_completed_on
from .dates import WEEKDAY_LABELS, format_day, month_days, parse_day, sunday_index, trailing_days, week_days
from .schemas import HABIT_CATEGORIES
from .tracking import TrackableEntity, is_at_risk


def _round_half_up(value: float, digits: int = 0) -> float:
    factor = 10 ** digits
    return math.floor(value * factor + 0.5) / factor


def _parse_minutes(raw_time: str) -> Optional[int]:
    try:
        hours, minutes = raw_time.split(":")
        return int(hours) * 60 + int(minutes)
    except (AttributeError, ValueError):
        return None


def session_minutes(session: dict) -> int:
    start = _parse_minutes(session.get("startTime"))
    end = _parse_minutes(session.get("endTime"))
    if start is None or end is None:
        return 0
    return max(0, end - start)


def project_daily_minutes(project: dict, days: list[date]) -> list[int]:
    totals = []
    for day in days:
        day_str = format_day(day)
        minutes = 0
        for session in project.get("recurringSessions", []):
            if is_completed_on(session.get("completions", []), day_str):
                minutes += session_minutes(session)
        totals.append(minutes)
    return totals


def _cumulative(values: list[float]) -> list[float]:
    running = 0.0
    result = []
    for value in values:
        running += value
        result.append(_round_half_up(running, 2))
    return result


def habit_category_stats(habits: list[dict]) -> dict[str, dict]:
    stats = {}
    for category in HABIT_CATEGORIES:
        in_category = [habit for habit in habits if habit.get("category") == category]
        stats[category] = {
            "total": len(in_category),
            "completed": sum(1 for habit in in_category if habit.get("completed")),
        }
    return stats


def habit_weekday_completions(habits: list[dict]) -> dict[str, list[int]]:
    """Completed records per weekday (Sunday first) across each habit's whole history."""
    result = {}
    for category in HABIT_CATEGORIES:
        counts = [0] * 7
        for habit in habits:
            if habit.get("category") != category:
                continue
            for record in habit.get("completionHistory", []):
                day = parse_day(record.get("date"))
                if day is not None and record.get("completed"):
                    counts[sunday_index(day)] += 1
        result[category] = counts
    return result


def weekly_summary(projects: list[dict], habits: list[dict], anchor: date) -> dict:
    days = week_days(anchor)

    series = []
    week_minutes = 0
    for project in projects:
        daily_minutes = project_daily_minutes(project, days)
        week_minutes += sum(daily_minutes)
        daily_hours = [_round_half_up(minutes / 60, 2) for minutes in daily_minutes]
        cumulative = _cumulative(daily_hours)
        series.append(
            {
                "id": project["id"],
                "title": project["title"],
                "color": project.get("color", ""),
                "dailyHours": daily_hours,
                "cumulativeHours": cumulative,
                "totalHours": cumulative[-1] if cumulative else 0.0,
            }
        )

    sessions = [session for project in projects for session in project.get("recurringSessions", [])]
    sessions_completed = sum(
        1 for session in sessions for record in session.get("completions", []) if record.get("completed")
    )
    total_sessions = len(sessions) * 7
    completion_rate = (
        int(_round_half_up(sessions_completed / total_sessions * 100)) if total_sessions else 0
    )

    return {
        "startDate": format_day(days[0]),
        "endDate": format_day(days[-1]),
        "labels": list(WEEKDAY_LABELS),
        "projects": series,
        "totalHours": int(_round_half_up(week_minutes / 60)),
        "sessionsCompleted": sessions_completed,
        "totalSessions": total_sessions,
        "completionRate": completion_rate,
        "habitCategories": habit_category_stats(habits),
        "habitWeekdayCompletions": habit_weekday_completions(habits),
    }


def monthly_habit_summary(habits: list[dict], anchor: date) -> dict:
    days = month_days(anchor)
    month_prefix = anchor.strftime("%Y-%m-")

    categories = {}
    for category in HABIT_CATEGORIES:
        in_category = [habit for habit in habits if habit.get("category") == category]
        completed = sum(
            1
            for habit in in_category
            for record in habit.get("completionHistory", [])
            if record.get("completed") and str(record.get("date", "")).startswith(month_prefix)
        )
        divisor = max(len(in_category), 1)
        daily_percent = []
        for day in days:
            day_str = format_day(day)
            done = sum(1 for habit in in_category if is_completed_on(habit.get("completionHistory", []), day_str))
            daily_percent.append(_round_half_up(done / divisor * 100, 2))
        categories[category] = {
            "total": len(in_category) * len(days),
            "completed": completed,
            "dailyPercent": daily_percent,
        }

    return {
        "month": anchor.strftime("%Y-%m"),
        "labels": [str(day.day) for day in days],
        "categories": categories,
    }


def mvg_streak_board(projects: list[dict], anchor: date, window: int = 7) -> list[dict]:
    today = format_day(anchor)
    yesterday = format_day(anchor - timedelta(days=1))

    items = []
    for project in projects:
        entity = TrackableEntity.from_mapping(project.get("mvg") or {}, entity_id=project["id"])
        history = entity.completion_history
        days = []
        for day in trailing_days(anchor, window):
            day_str = format_day(day)
            record = find_by_date(history, day_str)
            days.append({"date": day_str, "completed": bool(record and record.get("completed"))})
        items.append(
            {
                "projectId": project["id"],
                "title": project["title"],
                "color": project.get("color", ""),
                "streak": entity.streak,
                "completedToday": is_completed_on(history, today),
                "atRisk": is_at_risk(entity, today, yesterday),
                "days": days,
            }
        )
    return items
