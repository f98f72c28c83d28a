from dataclasses import dataclass, field, replace
from typing import Any, Iterable, Mapping, Optional

from .completion import compute_streak, is_completed_on, normalize_completion_history, record_completion


@dataclass(frozen=True)
class TrackableEntity:
    """Completion state shared by habits and project MVGs."""

    id: Optional[str] = None
    completed: bool = False
    streak: int = 0
    completion_history: list[dict] = field(default_factory=list)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any], entity_id: Optional[Any] = None) -> "TrackableEntity":
        raw_history = data.get("completionHistory", data.get("completion_history"))
        return cls(
            id=str(entity_id) if entity_id is not None else None,
            completed=bool(data.get("completed")),
            streak=max(0, int(data.get("streak") or 0)),
            completion_history=normalize_completion_history(raw_history),
        )

    def to_mapping(self) -> dict[str, Any]:
        return {
            "completed": self.completed,
            "streak": self.streak,
            "completionHistory": list(self.completion_history),
        }


def toggle_entity(entity: TrackableEntity, today: str) -> TrackableEntity:
    new_completed = not entity.completed
    new_history = record_completion(entity.completion_history, today, new_completed)
    new_streak = compute_streak(new_history, today) if new_completed else 0
    return replace(
        entity,
        completed=new_completed,
        streak=new_streak,
        completion_history=new_history,
    )


def reset_daily(entities: Iterable[TrackableEntity]) -> list[TrackableEntity]:
    # Streak and history stay as they are, unlike a toggle to not-completed.
    return [replace(entity, completed=False) for entity in entities]


def is_at_risk(entity: TrackableEntity, today: str, yesterday: str) -> bool:
    return (
        not is_completed_on(entity.completion_history, today)
        and is_completed_on(entity.completion_history, yesterday)
        and entity.streak > 0
    )
