"""Milestone endpoints."""
from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session

from app.db import get_db
from app.models.milestone import Milestone
from app.schemas.milestone import MilestoneRead, MilestoneUpdate
from app.security import Caller, require_caller
from app.services import milestones as milestones_service

router = APIRouter(prefix="/milestones", tags=["milestones"])


@router.put("/{milestone_id}", response_model=MilestoneRead)
def update_milestone(
    milestone_id: int,
    payload: MilestoneUpdate,
    db: Session = Depends(get_db),
    caller: Caller = Depends(require_caller),
) -> Milestone:
    """Mark a milestone completed and/or edit its details."""

    return milestones_service.update_milestone(db, milestone_id, caller, payload)


@router.delete("/{milestone_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_milestone(
    milestone_id: int,
    db: Session = Depends(get_db),
    caller: Caller = Depends(require_caller),
) -> Response:
    milestones_service.delete_milestone(db, milestone_id, caller)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
