from fastapi import APIRouter, BackgroundTasks, Depends, Query
from typing import Optional

from .models import EmergencyCreate, StatusUpdate, NoteCreate
from .manager import (
    create_emergency,
    get_emergencies,
    get_emergency,
    get_nearby_emergencies,
    respond_to_emergency,
    update_emergency_status,
    add_note,
)
from rescue_hub.auth.manager import get_current_user, require_volunteer_or_admin
from rescue_hub.notifications.utils import PushClient, get_push_client
from rescue_hub.shared.db import Database, get_db

router = APIRouter()


@router.post("", status_code=201)
async def create(
    emergency: EmergencyCreate,
    background_tasks: BackgroundTasks,
    current_user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
    push_client: PushClient = Depends(get_push_client),
):
    """Report a new emergency"""
    return await create_emergency(emergency, current_user, db, push_client, background_tasks)


@router.get("")
async def list_emergencies(
    status: Optional[str] = Query(None),
    urgency: Optional[str] = Query(None),
    limit: int = Query(50, ge=1, le=200),
    current_user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    """List emergencies; status accepts a comma-separated list"""
    filters = {"limit": limit}
    if status:
        filters["status"] = status
    if urgency:
        filters["urgency"] = urgency
    return await get_emergencies(filters, db)


@router.get("/nearby")
async def nearby(
    longitude: Optional[float] = Query(None),
    latitude: Optional[float] = Query(None),
    max_distance: int = Query(5000, alias="maxDistance", ge=1, le=100000),
    current_user: dict = Depends(require_volunteer_or_admin),
    db: Database = Depends(get_db),
):
    """Open emergencies close to a point"""
    return await get_nearby_emergencies(longitude, latitude, max_distance, db)


@router.get("/{emergency_id}")
async def get_single_emergency(
    emergency_id: str,
    current_user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    return await get_emergency(emergency_id, db)


@router.put("/{emergency_id}/respond")
async def respond(
    emergency_id: str,
    background_tasks: BackgroundTasks,
    current_user: dict = Depends(require_volunteer_or_admin),
    db: Database = Depends(get_db),
    push_client: PushClient = Depends(get_push_client),
):
    """Claim an emergency as the current volunteer"""
    return await respond_to_emergency(emergency_id, current_user, db, push_client, background_tasks)


@router.put("/{emergency_id}/status")
async def update_status(
    emergency_id: str,
    body: StatusUpdate,
    background_tasks: BackgroundTasks,
    current_user: dict = Depends(require_volunteer_or_admin),
    db: Database = Depends(get_db),
    push_client: PushClient = Depends(get_push_client),
):
    return await update_emergency_status(emergency_id, body, db, push_client, background_tasks)


@router.post("/{emergency_id}/notes")
async def notes(
    emergency_id: str,
    body: NoteCreate,
    current_user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    return await add_note(emergency_id, body, current_user, db)
