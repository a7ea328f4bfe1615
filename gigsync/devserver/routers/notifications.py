from fastapi import APIRouter, Depends, HTTPException, Response, status

from gigsync.devserver.auth_service import get_current_user, get_store
from gigsync.devserver.store import DevStore
from gigsync.schemas import User

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("")
async def get_notifications(
    current_user: User = Depends(get_current_user),
    store: DevStore = Depends(get_store),
):
    return [n.to_wire() for n in store.notifications_for(current_user.id)]


@router.get("/unread/count")
async def get_unread_count(
    current_user: User = Depends(get_current_user),
    store: DevStore = Depends(get_store),
):
    count = sum(1 for n in store.notifications_for(current_user.id) if not n.read)
    return {"count": count}


# 💡 /read/all 을 /{notification_id}/read 보다 먼저 등록
@router.put("/read/all")
async def mark_all_as_read(
    current_user: User = Depends(get_current_user),
    store: DevStore = Depends(get_store),
):
    store.mark_all_notifications_read(current_user.id)
    return {"success": True}


@router.put("/{notification_id}/read")
async def mark_as_read(
    notification_id: str,
    current_user: User = Depends(get_current_user),
    store: DevStore = Depends(get_store),
):
    notification = store.mark_notification_read(current_user.id, notification_id)
    if notification is None:
        raise HTTPException(status_code=404, detail="Notification not found")
    return notification.to_wire()


@router.delete("/{notification_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_notification(
    notification_id: str,
    current_user: User = Depends(get_current_user),
    store: DevStore = Depends(get_store),
):
    if not store.delete_notification(current_user.id, notification_id):
        raise HTTPException(status_code=404, detail="Notification not found")
    return Response(status_code=status.HTTP_204_NO_CONTENT)
