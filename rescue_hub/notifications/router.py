from fastapi import APIRouter, Depends, Query

from .manager import get_my_notifications, mark_notification_read, mark_all_notifications_read, delete_notification
from rescue_hub.auth.manager import get_current_user
from rescue_hub.shared.db import Database, get_db

router = APIRouter()


@router.get("")
async def list_notifications(
    limit: int = Query(50, ge=1, le=200),
    current_user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    """Get the current user's notifications"""
    return await get_my_notifications(current_user, db, limit)


@router.put("/read-all")
async def read_all(current_user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    return await mark_all_notifications_read(current_user, db)


@router.put("/{notification_id}/read")
async def read_one(notification_id: str, current_user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    return await mark_notification_read(notification_id, current_user, db)


@router.delete("/{notification_id}")
async def delete(notification_id: str, current_user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    return await delete_notification(notification_id, current_user, db)
