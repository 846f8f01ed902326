import logging
from typing import Optional

from .models import UserUpdate
from rescue_hub.auth.manager import USER_COLUMNS, serialize_user
from rescue_hub.auth.utils import USER_TYPES
from rescue_hub.emergencies.manager import populated_select
from rescue_hub.emergencies.utils import format_emergency
from rescue_hub.shared.db import Database
from rescue_hub.shared.errors import NotFoundError, ValidationError
from rescue_hub.shared.response import success_response
from rescue_hub.shared.utils import parse_uuid

logger = logging.getLogger("admin.manager")

# request field -> users column
UPDATABLE_USER_FIELDS = {
    "name": "name",
    "user_type": "user_type",
    "is_available": "is_available",
    "contact_number": "contact_number",
}


async def get_all_users(user_type: Optional[str], db: Database):
    """List users, optionally restricted to one user type"""
    query = f"SELECT {USER_COLUMNS} FROM users"
    params = []
    if user_type:
        if user_type not in USER_TYPES:
            raise ValidationError(f"Invalid user type: {user_type}")
        query += " WHERE user_type = $1"
        params.append(user_type)
    query += " ORDER BY created_at DESC"
    results = await db.execute_query(query, tuple(params))
    logger.info(f"Users fetched: {len(results)}")
    return success_response([serialize_user(r) for r in results], "Users retrieved successfully")


async def update_user(user_id: str, body: UserUpdate, db: Database):
    """Update the editable profile fields of a user"""
    user_uuid = parse_uuid(user_id, "user ID")
    changes = body.model_dump(exclude_unset=True, exclude_none=True)
    if "user_type" in changes and changes["user_type"] not in USER_TYPES:
        raise ValidationError(f"Invalid user type: {changes['user_type']}")
    if not changes:
        raise ValidationError("No fields to update")

    assignments = []
    params = [user_uuid]
    for field, value in changes.items():
        params.append(value)
        assignments.append(f"{UPDATABLE_USER_FIELDS[field]} = ${len(params)}")

    result = await db.execute_query(
        f"UPDATE users SET {', '.join(assignments)} WHERE id = $1 RETURNING {USER_COLUMNS}",
        tuple(params),
        fetch_one=True
    )
    if not result:
        raise NotFoundError("User not found")
    logger.info(f"User updated: {user_uuid} ({', '.join(changes)})")
    return success_response(serialize_user(result), "User updated successfully")


async def delete_user(user_id: str, db: Database):
    user_uuid = parse_uuid(user_id, "user ID")
    result = await db.execute_query("DELETE FROM users WHERE id = $1 RETURNING id", (user_uuid,), fetch_one=True)
    if not result:
        raise NotFoundError("User not found")
    logger.info(f"User deleted: {user_uuid}")
    return success_response({"id": result["id"]}, "User deleted successfully")


async def get_all_emergencies(db: Database):
    """Every emergency regardless of status, newest first"""
    results = await db.execute_query(f"{populated_select()} ORDER BY e.created_at DESC")
    logger.info(f"Emergencies fetched: {len(results)}")
    return success_response([format_emergency(r) for r in results], "Emergencies retrieved successfully")


async def delete_emergency(emergency_id: str, db: Database):
    """Hard delete; stored notifications keep their text but lose the back-reference"""
    emergency_uuid = parse_uuid(emergency_id, "emergency ID")
    result = await db.execute_query(
        "DELETE FROM emergencies WHERE id = $1 RETURNING id",
        (emergency_uuid,),
        fetch_one=True
    )
    if not result:
        raise NotFoundError("Emergency not found")
    logger.info(f"Emergency deleted: {emergency_uuid}")
    return success_response({"id": result["id"]}, "Emergency deleted successfully")
