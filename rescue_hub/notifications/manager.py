import asyncio
import logging
from typing import Dict, List, Optional, Tuple
from uuid import UUID, uuid4

from .models import DispatchResult
from .utils import PushClient
from rescue_hub.shared.db import Database
from rescue_hub.shared.errors import NotFoundError
from rescue_hub.shared.response import success_response
from rescue_hub.shared.utils import parse_uuid

logger = logging.getLogger("notifications.manager")

BROADCAST_USER_TYPES = ("volunteer", "admin")


# -----------------------
# Recipient resolution
# -----------------------

async def resolve_broadcast_recipients(db: Database) -> List[Tuple[UUID, str]]:
    """All volunteers and admins holding a push token. The audience is global, not proximity-based."""
    rows = await db.execute_query(
        """
        SELECT id, fcm_token FROM users
        WHERE user_type = ANY($1::text[])
        AND fcm_token IS NOT NULL AND fcm_token <> ''
        """,
        (list(BROADCAST_USER_TYPES),)
    )
    recipients = [(row["id"], row["fcm_token"]) for row in rows]
    logger.info(f"Found {len(recipients)} broadcast recipients with FCM tokens")
    return recipients


async def resolve_single_recipient(db: Database, user_id) -> Optional[str]:
    """Push token of one user, or None when the user has none"""
    row = await db.execute_query("SELECT fcm_token FROM users WHERE id = $1", (user_id,), fetch_one=True)
    if not row or not row["fcm_token"]:
        return None
    return row["fcm_token"]


# -----------------------
# Dispatch
# -----------------------

async def dispatch(push_client: PushClient, tokens: List[Optional[str]], title: str, body: str,
                   data: Optional[Dict] = None) -> DispatchResult:
    """
    Send one multicast push and return the per-token counts.

    Empty tokens are dropped first; when none remain no provider call is made.
    A provider failure is logged and returned as a failed result, never raised.
    """
    valid_tokens = [token for token in tokens if token]
    if not valid_tokens:
        logger.warning("No valid FCM tokens to send notification")
        return DispatchResult()

    logger.info(f"Sending FCM notification to {len(valid_tokens)} tokens: {title}")
    try:
        result = await push_client.send_multicast(valid_tokens, title, body, data)
    except Exception as e:
        logger.error(f"Error sending FCM notification: {e}", exc_info=True)
        return DispatchResult(failure_count=len(valid_tokens), error=str(e))

    logger.info(f"FCM notification sent: {result.success_count} succeeded, {result.failure_count} failed")
    return result


async def store_notifications(db: Database, user_ids: List[UUID], kind: str, title: str, message: str,
                              emergency_id=None, data: Optional[Dict] = None) -> int:
    """Persist one notification record per recipient. Failures are logged and reported as 0 stored."""
    if not user_ids:
        return 0
    rows = [(uuid4(), user_id, kind, title, message, emergency_id, data or {}) for user_id in user_ids]
    try:
        await db.executemany(
            """
            INSERT INTO notifications (id, user_id, type, title, message, emergency_id, data, created_at)
            VALUES ($1, $2, $3, $4, $5, $6, $7, NOW())
            """,
            rows
        )
    except Exception as e:
        logger.error(f"Error saving {kind} notifications to database: {e}", exc_info=True)
        return 0
    logger.info(f"Saved {len(rows)} {kind} notifications to database")
    return len(rows)


# -----------------------
# Event fanout
# -----------------------

def _truncate(text: str, size: int = 100) -> str:
    return text if len(text) <= size else f"{text[:size]}..."


def _location_label(emergency: dict) -> str:
    location = emergency["location"]
    if location.get("address"):
        return location["address"]
    lon, lat = location["coordinates"]
    return f"{lat}, {lon}"


async def notify_new_emergency(db: Database, push_client: PushClient, emergency: dict) -> DispatchResult:
    """Broadcast a new emergency to every volunteer and admin"""
    recipients = await resolve_broadcast_recipients(db)
    if not recipients:
        logger.info("No volunteers/admins with FCM tokens found")
        return DispatchResult()

    title = f"New {emergency['urgency'].upper()} Emergency!"
    body = f"{emergency['emergencyType']} - {_truncate(emergency['description'])}"
    push_data = {
        "emergencyId": str(emergency["id"]),
        "type": "new_emergency",
        "urgency": emergency["urgency"],
        "emergencyType": emergency["emergencyType"],
        "url": "/map",
    }
    record_data = {
        "urgency": emergency["urgency"],
        "emergencyType": emergency["emergencyType"],
        "location": _location_label(emergency),
    }
    result, stored = await asyncio.gather(
        dispatch(push_client, [token for _, token in recipients], title, body, push_data),
        store_notifications(db, [user_id for user_id, _ in recipients], "new_emergency", title, body,
                            emergency["id"], record_data),
    )
    logger.info(f"new_emergency fanout for {emergency['id']}: {result.success_count} pushed, {stored} stored")
    return result


async def _notify_reporter(db: Database, push_client: PushClient, emergency: dict, kind: str, title: str,
                           body: str, push_data: Dict, record_data: Dict) -> DispatchResult:
    if not emergency.get("user"):
        logger.info(f"Emergency {emergency['id']} has no reporter, {kind} notification not sent")
        return DispatchResult()
    reporter_id = emergency["user"]["id"]
    token = await resolve_single_recipient(db, reporter_id)
    if not token:
        logger.info(f"Reporter {reporter_id} has no FCM token, {kind} notification not sent")
        return DispatchResult()

    push_data = {"emergencyId": str(emergency["id"]), **push_data}
    result, _ = await asyncio.gather(
        dispatch(push_client, [token], title, body, push_data),
        store_notifications(db, [reporter_id], kind, title, body, emergency["id"], record_data),
    )
    return result


async def notify_volunteer_assigned(db: Database, push_client: PushClient, emergency: dict,
                                    volunteer_name: str) -> DispatchResult:
    """Tell the reporter a volunteer is responding"""
    return await _notify_reporter(
        db, push_client, emergency, "volunteer_assigned",
        "Help is on the way!",
        f"{volunteer_name} is responding to your {emergency['emergencyType']} request.",
        {"type": "volunteer_assigned", "volunteerName": volunteer_name, "url": "/dashboard"},
        {"volunteerName": volunteer_name, "emergencyType": emergency["emergencyType"]},
    )


async def notify_status_update(db: Database, push_client: PushClient, emergency: dict) -> DispatchResult:
    """Tell the reporter the assigned volunteer is on the way"""
    return await _notify_reporter(
        db, push_client, emergency, "status_update",
        "Help is Arriving!",
        "Volunteer is now on the way to your location.",
        {"type": "emergency_in_progress", "url": "/map"},
        {"newStatus": emergency["status"], "emergencyType": emergency["emergencyType"]},
    )


async def notify_emergency_resolved(db: Database, push_client: PushClient, emergency: dict) -> DispatchResult:
    """Tell the reporter the emergency was resolved"""
    return await _notify_reporter(
        db, push_client, emergency, "emergency_resolved",
        "Emergency Resolved",
        f"Your {emergency['emergencyType']} emergency has been successfully resolved. Thank you for using our service.",
        {"type": "emergency_resolved", "responseTime": emergency["responseTime"], "url": "/dashboard"},
        {"responseTime": emergency["responseTime"], "emergencyType": emergency["emergencyType"]},
    )


async def run_fanout(fanout, *args) -> None:
    """Background-task entry point: run a fanout and log whatever it raises."""
    try:
        result = await fanout(*args)
        logger.debug(f"{fanout.__name__} finished: {result}")
    except Exception:
        logger.exception(f"Notification fanout {fanout.__name__} failed")


# -----------------------
# Recipient inbox
# -----------------------

def serialize_notification(row) -> dict:
    return {
        "id": row["id"],
        "type": row["type"],
        "title": row["title"],
        "message": row["message"],
        "emergencyId": row["emergency_id"],
        "data": row["data"],
        "isRead": row["is_read"],
        "createdAt": row["created_at"],
    }


async def get_my_notifications(current_user: dict, db: Database, limit: int = 50):
    """Latest notifications of the current user plus the unread count"""
    rows = await db.execute_query(
        """
        SELECT id, type, title, message, emergency_id, data, is_read, created_at
        FROM notifications
        WHERE user_id = $1
        ORDER BY created_at DESC
        LIMIT $2
        """,
        (current_user["id"], limit)
    )
    unread = await db.execute_query(
        "SELECT COUNT(*) AS count FROM notifications WHERE user_id = $1 AND NOT is_read",
        (current_user["id"],),
        fetch_one=True
    )
    notifications = [serialize_notification(row) for row in rows]
    logger.info(f"Fetched {len(notifications)} notifications for user {current_user['id']}")
    return success_response({
        "notifications": notifications,
        "unreadCount": unread["count"] if unread else 0,
    }, "Notifications retrieved successfully")


async def mark_notification_read(notification_id: str, current_user: dict, db: Database):
    result = await db.execute_query(
        """
        UPDATE notifications SET is_read = TRUE
        WHERE id = $1 AND user_id = $2
        RETURNING id, type, title, message, emergency_id, data, is_read, created_at
        """,
        (parse_uuid(notification_id, "notification ID"), current_user["id"]),
        fetch_one=True
    )
    if not result:
        raise NotFoundError("Notification not found")
    return success_response(serialize_notification(result), "Notification marked as read")


async def mark_all_notifications_read(current_user: dict, db: Database):
    rows = await db.execute_query(
        "UPDATE notifications SET is_read = TRUE WHERE user_id = $1 AND NOT is_read RETURNING id",
        (current_user["id"],)
    )
    return success_response({"updated": len(rows)}, "All notifications marked as read")


async def delete_notification(notification_id: str, current_user: dict, db: Database):
    result = await db.execute_query(
        "DELETE FROM notifications WHERE id = $1 AND user_id = $2 RETURNING id",
        (parse_uuid(notification_id, "notification ID"), current_user["id"]),
        fetch_one=True
    )
    if not result:
        raise NotFoundError("Notification not found")
    logger.info(f"Notification {result['id']} deleted by user {current_user['id']}")
    return success_response({"id": result["id"]}, "Notification deleted successfully")
