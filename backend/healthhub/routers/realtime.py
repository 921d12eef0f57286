from datetime import datetime, timezone

from fastapi import APIRouter, Depends

from healthhub.constants import Role
from healthhub.deps import CurrentHub
from healthhub.schemas import RealtimeStatusOut
from healthhub.security import require_roles
from healthhub.services.realtime import RealtimeHub

router = APIRouter(prefix="/realtime", tags=["realtime"])


@router.get("/status", response_model=RealtimeStatusOut)
async def realtime_status(
    hub: RealtimeHub = CurrentHub,
    _admin=Depends(require_roles([Role.ADMIN])),
):
    """Presence counters and whether live change-stream push is running."""
    return RealtimeStatusOut(
        connections=len(hub.registry),
        online_users=len(hub.registry.online_users()),
        change_feed=hub.change_feed.status().as_dict(),
        checked_at=datetime.now(timezone.utc),
    )
