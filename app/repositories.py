"""
Per-user persistence for habits and projects.

Every repository is bound to one connection and one owning user id, and
every statement is scoped by that user id, so one account can never read or
write another account's rows. Writes are last-write-wins.
"""

import json
import uuid
from typing import Any, Iterable, Optional

import asyncpg

from .completion import normalize_completion_history, serialize_completion_history
from .db import executemany_named, fetch_named, fetchrow_named
from .schemas import DEFAULT_MVG_DESCRIPTION, DEFAULT_PROJECT_COLOR
from .tracking import TrackableEntity


def parse_entity_id(raw_id: Any) -> Optional[uuid.UUID]:
    try:
        return uuid.UUID(str(raw_id))
    except (TypeError, ValueError):
        return None


def _load_json(raw: Any, default: Any) -> Any:
    if raw is None:
        return default
    if isinstance(raw, (str, bytes)):
        try:
            return json.loads(raw)
        except ValueError:
            return default
    return raw


def _dump_json(value: Any) -> str:
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False, default=str)


def normalize_mvg(raw: Any) -> dict:
    data = _load_json(raw, {})
    if not isinstance(data, dict):
        data = {}
    description = data.get("description")
    entity = TrackableEntity.from_mapping(data)
    return {
        "description": description if isinstance(description, str) else DEFAULT_MVG_DESCRIPTION,
        **entity.to_mapping(),
    }


def normalize_sessions(raw: Any) -> list[dict]:
    data = _load_json(raw, [])
    if not isinstance(data, list):
        return []
    sessions = []
    for item in data:
        if not isinstance(item, dict):
            continue
        sessions.append({**item, "completions": normalize_completion_history(item.get("completions"))})
    return sessions


def normalize_phases(raw: Any) -> list[dict]:
    data = _load_json(raw, [])
    if not isinstance(data, list):
        return []
    return [item for item in data if isinstance(item, dict)]


def habit_from_row(row) -> dict:
    row_dict = dict(row)
    return {
        "id": str(row_dict["id"]),
        "name": row_dict["name"],
        "category": row_dict["category"],
        "identity": row_dict.get("identity"),
        "clearFramework": row_dict.get("clear_framework"),
        "completed": bool(row_dict.get("completed")),
        "streak": max(0, int(row_dict.get("streak") or 0)),
        "completionHistory": normalize_completion_history(row_dict.get("completion_history")),
        "createdAt": row_dict.get("created_at"),
        "updatedAt": row_dict.get("updated_at"),
    }


def project_from_row(row) -> dict:
    row_dict = dict(row)
    return {
        "id": str(row_dict["id"]),
        "title": row_dict["title"],
        "description": row_dict.get("description"),
        "taskCount": int(row_dict.get("task_count") or 0),
        "progress": int(row_dict.get("progress") or 0),
        "collaborators": int(row_dict.get("collaborators") or 1),
        "color": row_dict.get("color") or DEFAULT_PROJECT_COLOR,
        "startDate": row_dict.get("start_date"),
        "endDate": row_dict.get("end_date"),
        "phases": normalize_phases(row_dict.get("phases")),
        "recurringSessions": normalize_sessions(row_dict.get("recurring_sessions")),
        "mvg": normalize_mvg(row_dict.get("mvg")),
        "nextAction": row_dict.get("next_action"),
        "createdAt": row_dict.get("created_at"),
        "updatedAt": row_dict.get("updated_at"),
    }


HABIT_COLUMNS = """
    id, name, category, identity, clear_framework, completed, streak,
    completion_history, created_at, updated_at
"""


class HabitRepository:
    def __init__(self, conn: asyncpg.Connection, user_id: Any):
        self.conn = conn
        self.user_id = user_id

    async def list_all(self) -> list[dict]:
        rows = await fetch_named(
            self.conn,
            "habits.list",
            f"""
            SELECT {HABIT_COLUMNS}
            FROM habits
            WHERE user_id = $1
            ORDER BY created_at DESC
            """,
            self.user_id,
        )
        return [habit_from_row(row) for row in rows]

    async def get(self, habit_id: str) -> Optional[dict]:
        parsed_id = parse_entity_id(habit_id)
        if parsed_id is None:
            return None
        row = await fetchrow_named(
            self.conn,
            "habits.get",
            f"SELECT {HABIT_COLUMNS} FROM habits WHERE id = $1 AND user_id = $2",
            parsed_id,
            self.user_id,
        )
        return habit_from_row(row) if row else None

    async def create(self, fields: dict) -> dict:
        row = await fetchrow_named(
            self.conn,
            "habits.create",
            f"""
            INSERT INTO habits (
                user_id, name, category, identity, clear_framework,
                streak, completed, completion_history
            ) VALUES ($1, $2, $3, $4, $5, 0, FALSE, '[]'::jsonb)
            RETURNING {HABIT_COLUMNS}
            """,
            self.user_id,
            fields["name"],
            fields["category"],
            fields.get("identity"),
            fields.get("clearFramework"),
        )
        return habit_from_row(row)

    async def update(self, habit_id: str, fields: dict, entity: TrackableEntity) -> Optional[dict]:
        parsed_id = parse_entity_id(habit_id)
        if parsed_id is None:
            return None
        row = await fetchrow_named(
            self.conn,
            "habits.update",
            f"""
            UPDATE habits SET
                name = $1,
                category = $2,
                identity = $3,
                clear_framework = $4,
                completed = $5,
                streak = $6,
                completion_history = $7::jsonb,
                updated_at = NOW()
            WHERE id = $8 AND user_id = $9
            RETURNING {HABIT_COLUMNS}
            """,
            fields["name"],
            fields["category"],
            fields.get("identity"),
            fields.get("clearFramework"),
            entity.completed,
            entity.streak,
            serialize_completion_history(entity.completion_history),
            parsed_id,
            self.user_id,
        )
        return habit_from_row(row) if row else None

    async def save_tracking(self, entity: TrackableEntity) -> Optional[dict]:
        parsed_id = parse_entity_id(entity.id)
        if parsed_id is None:
            return None
        row = await fetchrow_named(
            self.conn,
            "habits.save_tracking",
            f"""
            UPDATE habits SET
                completed = $1,
                completion_history = $2::jsonb,
                streak = $3,
                updated_at = NOW()
            WHERE id = $4 AND user_id = $5
            RETURNING {HABIT_COLUMNS}
            """,
            entity.completed,
            serialize_completion_history(entity.completion_history),
            entity.streak,
            parsed_id,
            self.user_id,
        )
        return habit_from_row(row) if row else None

    async def save_completed_flags(self, entities: Iterable[TrackableEntity]) -> int:
        args_list = []
        for entity in entities:
            parsed_id = parse_entity_id(entity.id)
            if parsed_id is not None:
                args_list.append((entity.completed, parsed_id, self.user_id))
        if not args_list:
            return 0
        async with self.conn.transaction():
            await executemany_named(
                self.conn,
                "habits.save_completed_flags",
                """
                UPDATE habits SET
                    completed = $1,
                    updated_at = NOW()
                WHERE id = $2 AND user_id = $3
                """,
                args_list,
            )
        return len(args_list)

    async def delete(self, habit_id: str) -> bool:
        parsed_id = parse_entity_id(habit_id)
        if parsed_id is None:
            return False
        row = await fetchrow_named(
            self.conn,
            "habits.delete",
            "DELETE FROM habits WHERE id = $1 AND user_id = $2 RETURNING id",
            parsed_id,
            self.user_id,
        )
        return row is not None


PROJECT_COLUMNS = """
    id, title, description, task_count, progress, collaborators, color,
    start_date, end_date, phases, recurring_sessions, mvg, next_action,
    created_at, updated_at
"""


class ProjectRepository:
    def __init__(self, conn: asyncpg.Connection, user_id: Any):
        self.conn = conn
        self.user_id = user_id

    async def list_all(self) -> list[dict]:
        rows = await fetch_named(
            self.conn,
            "projects.list",
            f"""
            SELECT {PROJECT_COLUMNS}
            FROM projects
            WHERE user_id = $1
            ORDER BY created_at DESC
            """,
            self.user_id,
        )
        return [project_from_row(row) for row in rows]

    async def get(self, project_id: str) -> Optional[dict]:
        parsed_id = parse_entity_id(project_id)
        if parsed_id is None:
            return None
        row = await fetchrow_named(
            self.conn,
            "projects.get",
            f"SELECT {PROJECT_COLUMNS} FROM projects WHERE id = $1 AND user_id = $2",
            parsed_id,
            self.user_id,
        )
        return project_from_row(row) if row else None

    async def create(self, fields: dict) -> dict:
        row = await fetchrow_named(
            self.conn,
            "projects.create",
            f"""
            INSERT INTO projects (
                user_id, title, description, task_count, progress, collaborators,
                color, start_date, end_date, phases, recurring_sessions, mvg, next_action
            ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10::jsonb, $11::jsonb, $12::jsonb, $13)
            RETURNING {PROJECT_COLUMNS}
            """,
            self.user_id,
            *self._field_args(fields),
        )
        return project_from_row(row)

    async def update(self, project_id: str, fields: dict) -> Optional[dict]:
        parsed_id = parse_entity_id(project_id)
        if parsed_id is None:
            return None
        row = await fetchrow_named(
            self.conn,
            "projects.update",
            f"""
            UPDATE projects SET
                title = $1,
                description = $2,
                task_count = $3,
                progress = $4,
                collaborators = $5,
                color = $6,
                start_date = $7,
                end_date = $8,
                phases = $9::jsonb,
                recurring_sessions = $10::jsonb,
                mvg = $11::jsonb,
                next_action = $12,
                updated_at = NOW()
            WHERE id = $13 AND user_id = $14
            RETURNING {PROJECT_COLUMNS}
            """,
            *self._field_args(fields),
            parsed_id,
            self.user_id,
        )
        return project_from_row(row) if row else None

    async def save_mvg(self, project_id: str, mvg: dict) -> Optional[dict]:
        parsed_id = parse_entity_id(project_id)
        if parsed_id is None:
            return None
        row = await fetchrow_named(
            self.conn,
            "projects.save_mvg",
            f"""
            UPDATE projects SET
                mvg = $1::jsonb,
                updated_at = NOW()
            WHERE id = $2 AND user_id = $3
            RETURNING {PROJECT_COLUMNS}
            """,
            _dump_json(mvg),
            parsed_id,
            self.user_id,
        )
        return project_from_row(row) if row else None

    async def save_recurring_sessions(self, project_id: str, sessions: list[dict]) -> Optional[dict]:
        parsed_id = parse_entity_id(project_id)
        if parsed_id is None:
            return None
        row = await fetchrow_named(
            self.conn,
            "projects.save_recurring_sessions",
            f"""
            UPDATE projects SET
                recurring_sessions = $1::jsonb,
                updated_at = NOW()
            WHERE id = $2 AND user_id = $3
            RETURNING {PROJECT_COLUMNS}
            """,
            _dump_json(sessions),
            parsed_id,
            self.user_id,
        )
        return project_from_row(row) if row else None

    async def delete(self, project_id: str) -> bool:
        parsed_id = parse_entity_id(project_id)
        if parsed_id is None:
            return False
        row = await fetchrow_named(
            self.conn,
            "projects.delete",
            "DELETE FROM projects WHERE id = $1 AND user_id = $2 RETURNING id",
            parsed_id,
            self.user_id,
        )
        return row is not None

    @staticmethod
    def _field_args(fields: dict) -> tuple:
        return (
            fields["title"],
            fields.get("description"),
            fields.get("taskCount", 0),
            fields.get("progress", 0),
            fields.get("collaborators", 1),
            fields.get("color") or DEFAULT_PROJECT_COLOR,
            fields.get("startDate"),
            fields.get("endDate"),
            _dump_json(fields.get("phases", [])),
            _dump_json(fields.get("recurringSessions", [])),
            _dump_json(fields.get("mvg") or normalize_mvg(None)),
            fields.get("nextAction"),
        )


async def fetch_user_by_email(conn: asyncpg.Connection, email: str):
    return await fetchrow_named(
        conn,
        "users.by_email",
        "SELECT id, email, name, password_hash FROM users WHERE LOWER(email) = LOWER($1)",
        email,
    )


async def fetch_user_by_id(conn: asyncpg.Connection, user_id: Any):
    parsed_id = parse_entity_id(user_id)
    if parsed_id is None:
        return None
    return await fetchrow_named(
        conn,
        "users.by_id",
        "SELECT id, email, name FROM users WHERE id = $1",
        parsed_id,
    )


async def insert_user(conn: asyncpg.Connection, email: str, password_hash: str, name: Optional[str]):
    return await fetchrow_named(
        conn,
        "users.insert",
        """
        INSERT INTO users (email, password_hash, name)
        VALUES ($1, $2, $3)
        ON CONFLICT DO NOTHING
        RETURNING id, email, name
        """,
        email,
        password_hash,
        name,
    )
