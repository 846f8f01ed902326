from fastapi import APIRouter, Depends, Query
from typing import Optional

from .models import UserUpdate
from .manager import get_all_users, update_user, delete_user, get_all_emergencies, delete_emergency
from rescue_hub.auth.manager import require_admin
from rescue_hub.dashboard.manager import get_admin_stats
from rescue_hub.shared.db import Database, get_db

# Every route here is admin-only
router = APIRouter(dependencies=[Depends(require_admin)])


@router.get("/stats")
async def stats(current_user: dict = Depends(require_admin), db: Database = Depends(get_db)):
    return await get_admin_stats(current_user, db)


@router.get("/users")
async def users(user_type: Optional[str] = Query(None, alias="userType"), db: Database = Depends(get_db)):
    return await get_all_users(user_type, db)


@router.put("/users/{user_id}")
async def update(user_id: str, body: UserUpdate, db: Database = Depends(get_db)):
    return await update_user(user_id, body, db)


@router.delete("/users/{user_id}")
async def delete(user_id: str, db: Database = Depends(get_db)):
    return await delete_user(user_id, db)


@router.get("/emergencies")
async def emergencies(db: Database = Depends(get_db)):
    return await get_all_emergencies(db)


@router.delete("/emergencies/{emergency_id}")
async def remove_emergency(emergency_id: str, db: Database = Depends(get_db)):
    """Hard delete an emergency"""
    return await delete_emergency(emergency_id, db)
