import logging
from uuid import uuid4
from datetime import datetime, timezone
from typing import Optional

from fastapi import BackgroundTasks

from .models import EmergencyCreate, StatusUpdate, NoteCreate
from .utils import (
    ACTIVE_STATUSES,
    NEARBY_STATUSES,
    STATUSES,
    TERMINAL_STATUSES,
    URGENCY_LEVELS,
    bounding_box,
    check_transition,
    classify,
    compute_response_time,
    format_emergency,
    haversine,
    parse_location,
    validate_report,
)
from rescue_hub.notifications.manager import (
    notify_emergency_resolved,
    notify_new_emergency,
    notify_status_update,
    notify_volunteer_assigned,
    run_fanout,
)
from rescue_hub.notifications.utils import PushClient
from rescue_hub.shared.db import Database
from rescue_hub.shared.errors import ConflictError, InvalidTransitionError, NotFoundError, ValidationError
from rescue_hub.shared.response import success_response
from rescue_hub.shared.utils import parse_uuid

logger = logging.getLogger("emergencies.manager")

NEARBY_LIMIT = 20


def populated_select(source: str = "emergencies") -> str:
    """SELECT over `source` (a table or CTE) joining reporter, assigned volunteer and note author summaries"""
    return f"""
        SELECT e.*,
            json_build_object(
                'id', u.id, 'name', u.name, 'email', u.email, 'contactNumber', u.contact_number
            ) AS reporter,
            COALESCE((
                SELECT json_agg(
                    json_build_object('id', v.id, 'name', v.name, 'email', v.email, 'contactNumber', v.contact_number)
                    ORDER BY array_position(e.assigned_volunteers, v.id)
                )
                FROM users v
                WHERE v.id = ANY(e.assigned_volunteers)
            ), '[]'::json) AS volunteers,
            COALESCE((
                SELECT json_agg(
                    CASE WHEN a.id IS NULL THEN n.note
                    ELSE n.note || jsonb_build_object(
                        'addedBy', jsonb_build_object('id', a.id, 'name', a.name, 'email', a.email)
                    ) END
                    ORDER BY n.idx
                )
                FROM jsonb_array_elements(e.notes) WITH ORDINALITY AS n(note, idx)
                LEFT JOIN users a ON a.id::text = n.note->>'addedBy'
            ), '[]'::json) AS populated_notes
        FROM {source} e
        LEFT JOIN users u ON u.id = e.user_id
    """


async def create_emergency(payload: EmergencyCreate, current_user: dict, db: Database,
                           push_client: PushClient, background_tasks: BackgroundTasks):
    """Validate and store a new emergency report, then broadcast it to responders"""
    logger.info(f"User {current_user['id']} is reporting a {payload.emergency_type} emergency")
    urgency = payload.urgency or "medium"
    validate_report(payload.emergency_type, payload.description, urgency, payload.location)
    longitude, latitude, address = parse_location(payload.location)
    logger.debug(f"Parsed coordinates: [{longitude}, {latitude}]")

    query = f"""
        WITH created AS (
            INSERT INTO emergencies
            (id, user_id, emergency_type, description, urgency, location_lon, location_lat,
             location_address, contact_number, status, ai_classification, created_at, updated_at)
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, 'pending', $10, NOW(), NOW())
            RETURNING *
        )
        {populated_select("created")}
    """
    params = (
        uuid4(),
        current_user["id"],
        payload.emergency_type,
        payload.description.strip(),
        urgency,
        longitude,
        latitude,
        address,
        payload.contact_number or current_user.get("contact_number"),
        classify(payload.emergency_type),
    )
    result = await db.execute_query(query, params, fetch_one=True)
    emergency = format_emergency(result)
    logger.info(f"Emergency {emergency['id']} created successfully")

    background_tasks.add_task(run_fanout, notify_new_emergency, db, push_client, emergency)
    return success_response(emergency, "Emergency created successfully", status_code=201)


async def get_emergencies(filters: dict, db: Database):
    """List emergencies by status/urgency, newest first"""
    logger.info(f"Retrieving emergencies with filters: {filters}")
    if filters.get("status"):
        statuses = [s.strip() for s in filters["status"].split(",") if s.strip()]
    else:
        statuses = list(ACTIVE_STATUSES)
    invalid = [s for s in statuses if s not in STATUSES]
    if invalid:
        raise ValidationError(f"Invalid status filter: {', '.join(invalid)}")

    conditions = ["e.status = ANY($1::text[])"]
    params = [statuses]
    if filters.get("urgency"):
        if filters["urgency"] not in URGENCY_LEVELS:
            raise ValidationError(f"Invalid urgency filter: {filters['urgency']}")
        params.append(filters["urgency"])
        conditions.append(f"e.urgency = ${len(params)}")
    params.append(filters.get("limit", 50))

    query = f"""
        {populated_select()}
        WHERE {' AND '.join(conditions)}
        ORDER BY e.created_at DESC
        LIMIT ${len(params)}
    """
    results = await db.execute_query(query, tuple(params))
    emergencies = [format_emergency(r) for r in results]
    logger.info(f"Retrieved {len(emergencies)} emergencies")
    return success_response(emergencies, "Emergencies retrieved successfully")


async def get_emergency(emergency_id: str, db: Database):
    """Get a single emergency by ID"""
    result = await db.execute_query(
        f"{populated_select()} WHERE e.id = $1",
        (parse_uuid(emergency_id, "emergency ID"),),
        fetch_one=True
    )
    if not result:
        logger.warning(f"Emergency {emergency_id} not found")
        raise NotFoundError("Emergency not found")
    return success_response(format_emergency(result), "Emergency retrieved successfully")


async def get_nearby_emergencies(longitude: Optional[float], latitude: Optional[float], max_distance: int,
                                 db: Database):
    """Pending/assigned emergencies within max_distance metres, nearest first"""
    if longitude is None or latitude is None:
        raise ValidationError("Please provide longitude and latitude")
    if not -180 <= longitude <= 180 or not -90 <= latitude <= 90:
        raise ValidationError("Location coordinates are out of range")

    min_lat, max_lat, min_lon, max_lon = bounding_box(longitude, latitude, max_distance)
    results = await db.execute_query(
        f"""
        {populated_select()}
        WHERE e.status = ANY($1::text[])
        AND e.location_lat BETWEEN $2 AND $3
        AND e.location_lon BETWEEN $4 AND $5
        """,
        (list(NEARBY_STATUSES), min_lat, max_lat, min_lon, max_lon)
    )

    nearby = []
    for row in results:
        distance = haversine(latitude, longitude, row["location_lat"], row["location_lon"])
        if distance <= max_distance:
            emergency = format_emergency(row)
            emergency["distance"] = round(distance, 1)
            nearby.append(emergency)
    nearby.sort(key=lambda e: e["distance"])
    logger.info(f"Found {len(nearby)} emergencies within {max_distance}m of [{longitude}, {latitude}]")
    return success_response(nearby[:NEARBY_LIMIT], "Nearby emergencies retrieved successfully")


async def respond_to_emergency(emergency_id: str, current_user: dict, db: Database,
                               push_client: PushClient, background_tasks: BackgroundTasks):
    """Assign the current volunteer to an emergency, promoting pending to assigned"""
    emergency_uuid = parse_uuid(emergency_id, "emergency ID")
    volunteer_id = current_user["id"]
    logger.info(f"Volunteer {volunteer_id} responding to emergency {emergency_uuid}")

    # Append-if-absent and promotion happen in one statement so concurrent responders cannot lose updates
    query = f"""
        WITH updated AS (
            UPDATE emergencies
            SET assigned_volunteers = array_append(assigned_volunteers, $2::uuid),
                status = CASE WHEN status = 'pending' THEN 'assigned' ELSE status END,
                updated_at = NOW()
            WHERE id = $1
            AND NOT ($2::uuid = ANY(assigned_volunteers))
            AND status <> ALL($3::text[])
            RETURNING *
        )
        {populated_select("updated")}
    """
    result = await db.execute_query(query, (emergency_uuid, volunteer_id, list(TERMINAL_STATUSES)), fetch_one=True)
    if not result:
        current = await db.execute_query(
            "SELECT status, assigned_volunteers FROM emergencies WHERE id = $1",
            (emergency_uuid,),
            fetch_one=True
        )
        if not current:
            raise NotFoundError("Emergency not found")
        if volunteer_id in current["assigned_volunteers"]:
            logger.warning(f"Volunteer {volunteer_id} already assigned to {emergency_uuid}")
            raise ConflictError("Already assigned to this emergency")
        if current["status"] in TERMINAL_STATUSES:
            raise InvalidTransitionError(f"Cannot respond to a {current['status']} emergency")
        raise ConflictError("Emergency changed while responding, please retry")

    emergency = format_emergency(result)
    logger.info(f"Volunteer {volunteer_id} assigned to emergency {emergency['id']}")
    background_tasks.add_task(run_fanout, notify_volunteer_assigned, db, push_client, emergency, current_user["name"])
    return success_response(emergency, "Volunteer assigned successfully")


async def update_emergency_status(emergency_id: str, body: StatusUpdate, db: Database,
                                  push_client: PushClient, background_tasks: BackgroundTasks):
    """Move an emergency along its lifecycle"""
    emergency_uuid = parse_uuid(emergency_id, "emergency ID")
    if not body.status:
        raise ValidationError("Status is required")

    current = await db.execute_query(
        "SELECT status, created_at FROM emergencies WHERE id = $1",
        (emergency_uuid,),
        fetch_one=True
    )
    if not current:
        raise NotFoundError("Emergency not found")
    old_status, new_status = current["status"], body.status
    check_transition(old_status, new_status)

    resolved_at = response_time = None
    if new_status == "resolved":
        resolved_at = datetime.now(timezone.utc)
        response_time = compute_response_time(current["created_at"], resolved_at)

    query = f"""
        WITH updated AS (
            UPDATE emergencies
            SET status = $3,
                resolved_at = COALESCE($4, resolved_at),
                response_time = COALESCE($5, response_time),
                updated_at = NOW()
            WHERE id = $1 AND status = $2
            RETURNING *
        )
        {populated_select("updated")}
    """
    result = await db.execute_query(
        query,
        (emergency_uuid, old_status, new_status, resolved_at, response_time),
        fetch_one=True
    )
    if not result:
        logger.warning(f"Emergency {emergency_uuid} left {old_status} before the update was applied")
        raise ConflictError("Emergency status was changed by another request, please retry")

    emergency = format_emergency(result)
    logger.info(f"Emergency {emergency['id']} status updated: {old_status} -> {new_status}")
    if new_status == "resolved":
        background_tasks.add_task(run_fanout, notify_emergency_resolved, db, push_client, emergency)
    elif old_status == "assigned" and new_status == "in-progress":
        background_tasks.add_task(run_fanout, notify_status_update, db, push_client, emergency)
    return success_response(emergency, "Emergency status updated successfully")


async def add_note(emergency_id: str, body: NoteCreate, current_user: dict, db: Database):
    """Append a note to an emergency"""
    emergency_uuid = parse_uuid(emergency_id, "emergency ID")
    if not body.text or not body.text.strip():
        raise ValidationError("Note text is required")

    note = {
        "text": body.text.strip(),
        "addedBy": str(current_user["id"]),
        "addedAt": datetime.now(timezone.utc).isoformat(),
    }
    query = f"""
        WITH updated AS (
            UPDATE emergencies
            SET notes = notes || $2::jsonb, updated_at = NOW()
            WHERE id = $1
            RETURNING *
        )
        {populated_select("updated")}
    """
    result = await db.execute_query(query, (emergency_uuid, [note]), fetch_one=True)
    if not result:
        raise NotFoundError("Emergency not found")
    logger.info(f"Note added to emergency {emergency_uuid} by {current_user['id']}")
    return success_response(format_emergency(result), "Note added successfully")
