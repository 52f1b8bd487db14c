"""Per-user onboarding state."""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session as DBSession

from homecentral.auth.dependencies import get_current_user
from homecentral.core.time import isoformat, utcnow
from homecentral.db import get_db
from homecentral.db.models import User

router = APIRouter(prefix="/api/user", tags=["user"])


@router.get("/onboarding-status")
async def onboarding_status(current_user: User = Depends(get_current_user)):
    return {
        "completed": current_user.onboarding_completed_at is not None,
        "completedAt": isoformat(current_user.onboarding_completed_at),
    }


@router.post("/onboarding-complete")
async def complete_onboarding(
    current_user: User = Depends(get_current_user),
    db: DBSession = Depends(get_db),
):
    """Idempotent: the first completion timestamp is kept."""
    if current_user.onboarding_completed_at is None:
        current_user.onboarding_completed_at = utcnow()
        db.commit()
    return {"completed": True, "completedAt": isoformat(current_user.onboarding_completed_at)}
