from fastapi import APIRouter, HTTPException

from healthhub.deps import CurrentHub, CurrentUser
from healthhub.models import User
from healthhub.schemas import NotificationIn, NotificationListOut, NotificationOut, UnreadCountOut
from healthhub.services.realtime import RealtimeHub
from healthhub.utils.chat_helpers import serialize_notification

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("", response_model=NotificationListOut)
async def list_notifications(current: User = CurrentUser, hub: RealtimeHub = CurrentHub):
    """Inbox, newest first, capped at the configured page size."""
    notifications = await hub.notifications.list_for_user(str(current.id))
    data = [NotificationOut(**serialize_notification(n)) for n in notifications]
    return NotificationListOut(data=data, count=len(data))


@router.post("", response_model=NotificationOut, status_code=201)
async def create_notification(
    payload: NotificationIn,
    current: User = CurrentUser,
    hub: RealtimeHub = CurrentHub,
):
    """Create a notification for the calling user and push it to their sockets."""
    notification = await hub.notifications.notify(
        user_id=str(current.id),
        type=payload.type,
        title=payload.title,
        message=payload.message,
        priority=payload.priority,
        metadata=payload.metadata,
        action_url=payload.actionUrl,
        action_label=payload.actionLabel,
        role=current.role,
    )
    if notification is None:
        raise HTTPException(status_code=500, detail="Error creating notification")
    return NotificationOut(**serialize_notification(notification))


@router.get("/unread/count", response_model=UnreadCountOut)
async def unread_count(current: User = CurrentUser, hub: RealtimeHub = CurrentHub):
    return UnreadCountOut(count=await hub.notifications.unread_count(str(current.id)))


@router.put("/mark-all-read")
async def mark_all_read(current: User = CurrentUser, hub: RealtimeHub = CurrentHub):
    updated = await hub.notifications.mark_all_read(str(current.id))
    return {"success": True, "updated": updated, "message": "All notifications marked as read"}


@router.put("/{notification_id}/read", response_model=NotificationOut)
async def mark_read(notification_id: str, current: User = CurrentUser, hub: RealtimeHub = CurrentHub):
    notification = await hub.notifications.mark_read(notification_id, str(current.id))
    if not notification:
        raise HTTPException(status_code=404, detail="Notification not found")
    return NotificationOut(**serialize_notification(notification))


@router.delete("/{notification_id}")
async def delete_notification(notification_id: str, current: User = CurrentUser, hub: RealtimeHub = CurrentHub):
    if not await hub.notifications.delete(notification_id, str(current.id)):
        raise HTTPException(status_code=404, detail="Notification not found")
    return {"success": True, "message": "Notification deleted successfully"}
