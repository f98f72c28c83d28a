from app.completion import serialize_completion_history
from app.tracking import TrackableEntity, is_at_risk, reset_daily, toggle_entity


def test_toggle_three_times_on_same_day():
    entity = TrackableEntity(id="habit-1")

    first = toggle_entity(entity, "2024-06-01")
    assert first.completed is True
    assert first.streak == 1
    assert first.completion_history == [{"date": "2024-06-01", "completed": True}]

    second = toggle_entity(first, "2024-06-01")
    assert second.completed is False
    assert second.streak == 0
    assert second.completion_history == [{"date": "2024-06-01", "completed": False}]

    third = toggle_entity(second, "2024-06-01")
    assert third.completed is True
    assert third.streak == 1
    assert third.completion_history == [{"date": "2024-06-01", "completed": True}]
    assert third.id == "habit-1"


def test_toggle_recomputes_stale_streak_across_days():
    entity = TrackableEntity(
        id="habit-1",
        completed=False,
        streak=0,
        completion_history=[
            {"date": "2024-06-01", "completed": True},
            {"date": "2024-06-02", "completed": True},
        ],
    )

    toggled = toggle_entity(entity, "2024-06-03")

    assert toggled.completed is True
    assert toggled.streak == 3
    assert toggled.completion_history[0] == {"date": "2024-06-03", "completed": True}
    assert len(toggled.completion_history) == 3


def test_toggle_to_not_completed_always_zeroes_streak():
    entity = TrackableEntity(
        id="habit-1",
        completed=True,
        streak=5,
        completion_history=[
            {"date": "2024-06-03", "completed": True},
            {"date": "2024-06-02", "completed": True},
        ],
    )

    toggled = toggle_entity(entity, "2024-06-03")

    assert toggled.completed is False
    assert toggled.streak == 0
    assert toggled.completion_history[0] == {"date": "2024-06-03", "completed": False}


def test_toggle_does_not_mutate_input():
    history = [{"date": "2024-06-02", "completed": True}]
    entity = TrackableEntity(id="habit-1", completion_history=history)

    toggle_entity(entity, "2024-06-03")

    assert entity.completion_history == [{"date": "2024-06-02", "completed": True}]
    assert entity.completed is False


def test_reset_daily_only_clears_completed_flag():
    # Known inconsistency: a reset keeps the streak a false toggle would zero.
    entities = [
        TrackableEntity(
            id="a",
            completed=True,
            streak=4,
            completion_history=[{"date": "2024-06-03", "completed": True}],
        ),
        TrackableEntity(id="b", completed=False, streak=2, completion_history=[]),
    ]
    before = [(serialize_completion_history(e.completion_history), e.streak) for e in entities]

    reset = reset_daily(entities)

    assert [entity.completed for entity in reset] == [False, False]
    assert [(serialize_completion_history(e.completion_history), e.streak) for e in reset] == before
    assert [entity.id for entity in reset] == ["a", "b"]


def test_from_mapping_normalizes_missing_history_and_streak():
    entity = TrackableEntity.from_mapping({"completed": True, "completionHistory": None}, entity_id=7)

    assert entity.id == "7"
    assert entity.completed is True
    assert entity.streak == 0
    assert entity.completion_history == []
    assert entity.to_mapping() == {"completed": True, "streak": 0, "completionHistory": []}


def test_from_mapping_accepts_snake_case_history():
    entity = TrackableEntity.from_mapping(
        {"completed": False, "streak": 2, "completion_history": '[{"date": "2024-06-01", "completed": true}]'}
    )

    assert entity.completion_history == [{"date": "2024-06-01", "completed": True}]
    assert entity.streak == 2


def test_is_at_risk_when_yesterday_done_and_today_open():
    entity = TrackableEntity(
        streak=3,
        completion_history=[{"date": "2024-06-02", "completed": True}],
    )

    assert is_at_risk(entity, "2024-06-03", "2024-06-02") is True

    done_today = toggle_entity(entity, "2024-06-03")
    assert is_at_risk(done_today, "2024-06-03", "2024-06-02") is False

    no_streak = TrackableEntity(streak=0, completion_history=entity.completion_history)
    assert is_at_risk(no_streak, "2024-06-03", "2024-06-02") is False
