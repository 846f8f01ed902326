import logging
from datetime import datetime, timezone

from .utils import (
    ADMIN_RESPONSE_TIME_FALLBACK,
    PUBLIC_RESPONSE_TIME_FALLBACK,
    average_response_time,
    format_feed_item,
    group_counts,
)
from rescue_hub.emergencies.manager import populated_select
from rescue_hub.emergencies.utils import ACTIVE_STATUSES, format_emergency
from rescue_hub.shared.db import Database
from rescue_hub.shared.response import success_response

logger = logging.getLogger("dashboard.manager")


async def _count(db: Database, sql: str, params=None) -> int:
    row = await db.execute_query(sql, params, fetch_one=True)
    return row["count"] if row else 0


async def count_active_emergencies(db: Database) -> int:
    return await _count(
        db,
        "SELECT COUNT(*) AS count FROM emergencies WHERE status = ANY($1::text[])",
        (list(ACTIVE_STATUSES),)
    )


async def count_available_volunteers(db: Database) -> int:
    return await _count(
        db,
        "SELECT COUNT(*) AS count FROM users WHERE user_type = 'volunteer' AND is_available"
    )


async def resolved_response_times(db: Database):
    """(average, count) of response_time over resolved emergencies that have one"""
    row = await db.execute_query(
        """
        SELECT AVG(response_time)::float AS average, COUNT(*) AS count
        FROM emergencies
        WHERE status = 'resolved' AND response_time IS NOT NULL
        """,
        fetch_one=True
    )
    if not row:
        return None, 0
    return row["average"], row["count"]


async def get_dashboard_stats(current_user: dict, db: Database):
    """Counters and the ten most recent open emergencies for the live dashboard"""
    logger.info(f"Dashboard stats requested by {current_user['id']}")
    active = await count_active_emergencies(db)
    volunteers = await count_available_volunteers(db)
    resolved_today = await _count(
        db,
        "SELECT COUNT(*) AS count FROM emergencies WHERE status = 'resolved' AND resolved_at >= date_trunc('day', NOW())"
    )
    recent = await db.execute_query(
        """
        SELECT e.id, e.emergency_type, e.description, e.urgency, e.status, e.location_lon,
               e.location_lat, e.location_address, e.created_at,
               u.name AS reporter_name, u.email AS reporter_email
        FROM emergencies e
        LEFT JOIN users u ON u.id = e.user_id
        WHERE e.status = ANY($1::text[])
        ORDER BY e.created_at DESC
        LIMIT 10
        """,
        (list(ACTIVE_STATUSES),)
    )
    now = datetime.now(timezone.utc)
    stats = {
        "activeEmergencies": active,
        "availableVolunteers": volunteers,
        "resolvedToday": resolved_today,
    }
    logger.info(f"Stats calculated: {stats}")
    return success_response({
        "stats": stats,
        "emergencies": [format_feed_item(row, now) for row in recent],
    }, "Dashboard stats retrieved successfully")


async def get_my_emergencies(current_user: dict, db: Database):
    """Emergencies reported by the current user"""
    results = await db.execute_query(
        f"{populated_select()} WHERE e.user_id = $1 ORDER BY e.created_at DESC",
        (current_user["id"],)
    )
    return success_response([format_emergency(r) for r in results], "Emergencies retrieved successfully")


async def get_assigned_emergencies(current_user: dict, db: Database):
    """Emergencies the current volunteer has responded to"""
    results = await db.execute_query(
        f"{populated_select()} WHERE $1::uuid = ANY(e.assigned_volunteers) ORDER BY e.created_at DESC",
        (current_user["id"],)
    )
    return success_response([format_emergency(r) for r in results], "Assigned emergencies retrieved successfully")


async def get_public_stats(db: Database):
    """Unauthenticated landing-page numbers"""
    resolved = await _count(db, "SELECT COUNT(*) AS count FROM emergencies WHERE status = 'resolved'")
    volunteers = await count_available_volunteers(db)
    average, count = await resolved_response_times(db)
    active = await count_active_emergencies(db)
    total_users = await _count(db, "SELECT COUNT(*) AS count FROM users")
    stats = {
        "emergencies": resolved,
        "volunteers": volunteers,
        "responseTime": average_response_time(average, count, PUBLIC_RESPONSE_TIME_FALLBACK),
        "activeEmergencies": active,
        "totalUsers": total_users,
    }
    logger.info(f"Public stats: {stats}")
    return success_response(stats, "Public stats retrieved successfully")


async def get_admin_stats(current_user: dict, db: Database):
    """Totals, average response time and breakdowns by status, type and urgency"""
    logger.info(f"Admin stats requested by {current_user['id']}")
    total = await _count(db, "SELECT COUNT(*) AS count FROM emergencies")
    volunteers = await count_available_volunteers(db)
    average, count = await resolved_response_times(db)
    by_status = await db.execute_query(
        "SELECT status AS _id, COUNT(*) AS count FROM emergencies GROUP BY status ORDER BY count DESC"
    )
    by_type = await db.execute_query(
        "SELECT emergency_type AS _id, COUNT(*) AS count FROM emergencies GROUP BY emergency_type ORDER BY count DESC"
    )
    by_urgency = await db.execute_query(
        "SELECT urgency AS _id, COUNT(*) AS count FROM emergencies GROUP BY urgency ORDER BY count DESC"
    )
    return success_response({
        "totalEmergencies": total,
        "activeVolunteers": volunteers,
        "avgResponseTime": average_response_time(average, count, ADMIN_RESPONSE_TIME_FALLBACK),
        "emergenciesByStatus": group_counts(by_status),
        "emergenciesByType": group_counts(by_type),
        "emergenciesByUrgency": group_counts(by_urgency),
    }, "Admin stats retrieved successfully")
