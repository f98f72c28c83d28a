"""
Completion log and streak rules shared by habits, project MVGs and
recurring work sessions.

A completion log is a list of ``{"date": "YYYY-MM-DD", "completed": bool}``
dicts (work-session records may also carry ``"notes"``). The list is stored
as-is in JSONB columns, so every function here takes and returns plain
dicts. At most one record exists per date; new records are prepended.

Nothing in this module reads the clock. Callers pass the day explicitly.
"""

import json
from typing import Any, Optional


def normalize_completion_history(raw: Any) -> list[dict]:
    """
    Coerce a stored or client-supplied history into a completion log.

    Accepts a list, a JSON-encoded list or nothing at all. Entries that are
    not record-shaped are dropped; the first record wins on a duplicate date.
    """
    if isinstance(raw, (str, bytes)):
        try:
            raw = json.loads(raw)
        except ValueError:
            return []
    if not isinstance(raw, (list, tuple)):
        return []

    log: list[dict] = []
    seen: set[str] = set()
    for item in raw:
        if not isinstance(item, dict):
            continue
        day = item.get("date")
        if not isinstance(day, str) or not day or day in seen:
            continue
        record = {"date": day, "completed": bool(item.get("completed"))}
        notes = item.get("notes")
        if isinstance(notes, str):
            record["notes"] = notes
        seen.add(day)
        log.append(record)
    return log


def serialize_completion_history(log: list[dict]) -> str:
    return json.dumps(log, separators=(",", ":"), ensure_ascii=False)


def find_by_date(log: list[dict], day: str) -> Optional[dict]:
    for record in log:
        if record.get("date") == day:
            return record
    return None


def is_completed_on(log: list[dict], day: str) -> bool:
    record = find_by_date(log, day)
    return bool(record and record.get("completed"))


def record_completion(
    log: list[dict],
    day: str,
    completed: bool,
    notes: Optional[str] = None,
) -> list[dict]:
    """Upsert the record for ``day`` and return a new log."""
    updated: list[dict] = []
    found = False
    for record in log:
        if record.get("date") == day and not found:
            record = {**record, "completed": completed}
            if notes is not None:
                record["notes"] = notes
            found = True
        updated.append(record)

    if found:
        return updated

    new_record = {"date": day, "completed": completed}
    if notes is not None:
        new_record["notes"] = notes
    return [new_record, *updated]


def compute_streak(log: list[dict], as_of: str) -> int:
    """
    Count the most recent completed records up to and including ``as_of``.

    Counting stops at the first record marked not completed. Days with no
    record at all do not break the streak: ``2024-01-10`` and ``2024-01-08``
    both completed give a streak of 2 as of ``2024-01-10``.

    Records dated after ``as_of`` are left out, so a streak always ends at
    ``as_of``. This departs on purpose from scanning the whole log, where a
    future-dated ``completed=false`` record would zero the streak.
    """
    # YYYY-MM-DD sorts chronologically as a plain string.
    ordered = sorted(
        (record for record in log if record.get("date", "") <= as_of),
        key=lambda record: record.get("date", ""),
        reverse=True,
    )

    streak = 0
    for record in ordered:
        if not record.get("completed"):
            break
        streak += 1
    return streak
