import logging

from fastapi import APIRouter, Depends, Request

from .completion import compute_streak, record_completion
from .deps import get_project_repository, get_today
from .errors import not_found
from .observability import log_ctx, log_ctx_json
from .repositories import ProjectRepository, normalize_mvg
from .schemas import (
    MessageResponse,
    ProjectPayload,
    ProjectResponse,
    SessionCompletionRequest,
)
from .tracking import TrackableEntity, toggle_entity


logger = logging.getLogger("pulseboard-projects")

router = APIRouter(prefix="/api/projects", tags=["Projects"])


def _project_fields(payload: ProjectPayload, today: str) -> dict:
    fields = payload.model_dump(exclude={"phases", "recurringSessions", "mvg"})
    fields["phases"] = [phase.model_dump(exclude_none=True) for phase in payload.phases]
    fields["recurringSessions"] = [
        session.model_dump(exclude_none=True) for session in payload.recurringSessions
    ]
    # Fills a missing MVG or history with defaults.
    mvg = normalize_mvg(payload.mvg.model_dump(exclude_none=True) if payload.mvg else None)
    # The cached streak is always derived from the stored history.
    mvg["streak"] = compute_streak(mvg["completionHistory"], today)
    fields["mvg"] = mvg
    return fields


@router.get("", response_model=list[ProjectResponse])
async def list_projects(repo: ProjectRepository = Depends(get_project_repository)):
    return await repo.list_all()


@router.get("/{project_id}", response_model=ProjectResponse)
async def get_project(project_id: str, repo: ProjectRepository = Depends(get_project_repository)):
    project = await repo.get(project_id)
    if project is None:
        raise not_found("Project")
    return project


@router.post("", response_model=ProjectResponse, status_code=201)
async def create_project(
    payload: ProjectPayload,
    request: Request,
    repo: ProjectRepository = Depends(get_project_repository),
    today: str = Depends(get_today),
):
    project = await repo.create(_project_fields(payload, today))
    logger.info(
        "PROJECT_CREATED context=%s",
        log_ctx_json(
            log_ctx(
                request,
                user_id=repo.user_id,
                entity_id=project["id"],
                extra={
                    "phases": len(project["phases"]),
                    "recurring_sessions": len(project["recurringSessions"]),
                },
            )
        ),
    )
    return project


@router.put("/{project_id}", response_model=ProjectResponse)
async def update_project(
    project_id: str,
    payload: ProjectPayload,
    repo: ProjectRepository = Depends(get_project_repository),
    today: str = Depends(get_today),
):
    project = await repo.update(project_id, _project_fields(payload, today))
    if project is None:
        raise not_found("Project")
    return project


@router.put("/{project_id}/mvg/toggle", response_model=ProjectResponse)
async def toggle_project_mvg(
    project_id: str,
    request: Request,
    repo: ProjectRepository = Depends(get_project_repository),
    today: str = Depends(get_today),
):
    project = await repo.get(project_id)
    if project is None:
        raise not_found("Project")

    mvg = project["mvg"]
    toggled = toggle_entity(TrackableEntity.from_mapping(mvg, entity_id=project["id"]), today)
    saved = await repo.save_mvg(project_id, {**mvg, **toggled.to_mapping()})
    if saved is None:
        raise not_found("Project")

    logger.info(
        "MVG_TOGGLED context=%s",
        log_ctx_json(
            log_ctx(
                request,
                user_id=repo.user_id,
                entity_id=project["id"],
                extra={"completed": toggled.completed, "streak": toggled.streak, "date": today},
            )
        ),
    )
    return saved


@router.put("/{project_id}/sessions/{session_id}/completion", response_model=ProjectResponse)
async def record_session_completion(
    project_id: str,
    session_id: str,
    payload: SessionCompletionRequest,
    repo: ProjectRepository = Depends(get_project_repository),
    today: str = Depends(get_today),
):
    project = await repo.get(project_id)
    if project is None:
        raise not_found("Project")

    day = payload.date or today
    sessions = []
    found = False
    for session in project["recurringSessions"]:
        if session.get("id") == session_id and not found:
            session = {
                **session,
                "completions": record_completion(
                    session["completions"], day, payload.completed, notes=payload.notes
                ),
            }
            found = True
        sessions.append(session)

    if not found:
        raise not_found("Session")

    saved = await repo.save_recurring_sessions(project_id, sessions)
    if saved is None:
        raise not_found("Project")
    return saved


@router.delete("/{project_id}", response_model=MessageResponse)
async def delete_project(project_id: str, repo: ProjectRepository = Depends(get_project_repository)):
    deleted = await repo.delete(project_id)
    if not deleted:
        raise not_found("Project")
    return MessageResponse(message="Project deleted successfully")
