from fastapi import APIRouter, Depends

from .manager import get_dashboard_stats, get_my_emergencies, get_assigned_emergencies, get_public_stats
from rescue_hub.auth.manager import get_current_user, require_volunteer_or_admin
from rescue_hub.shared.db import Database, get_db

router = APIRouter()


@router.get("/public-stats")
async def public_stats(db: Database = Depends(get_db)):
    """Landing page statistics (no auth required)"""
    return await get_public_stats(db)


@router.get("/stats")
async def stats(current_user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    return await get_dashboard_stats(current_user, db)


@router.get("/my-emergencies")
async def my_emergencies(current_user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    return await get_my_emergencies(current_user, db)


@router.get("/assigned-emergencies")
async def assigned_emergencies(current_user: dict = Depends(require_volunteer_or_admin), db: Database = Depends(get_db)):
    return await get_assigned_emergencies(current_user, db)
