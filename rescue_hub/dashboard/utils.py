import math
from datetime import datetime
from typing import Optional

# Shown on the landing page before any emergency has been resolved
PUBLIC_RESPONSE_TIME_FALLBACK = 4.2
ADMIN_RESPONSE_TIME_FALLBACK = 0.0

_TIME_UNITS = (
    (31536000, "years"),
    (2592000, "months"),
    (86400, "days"),
    (3600, "hours"),
    (60, "min"),
)


def time_ago(then: datetime, now: datetime) -> str:
    """Coarse relative age such as '5 min ago' or '2 days ago'"""
    seconds = (now - then).total_seconds()
    for size, label in _TIME_UNITS:
        interval = seconds / size
        if interval > 1:
            return f"{math.floor(interval)} {label} ago"
    return f"{max(0, math.floor(seconds))} sec ago"


def average_response_time(average: Optional[float], count: int, fallback: float) -> float:
    """Average response time rounded to one decimal, or the fallback when nothing is resolved yet"""
    if not count or average is None:
        return fallback
    return round(float(average), 1)


def format_feed_item(row, now: datetime) -> dict:
    """Compact emergency card for the live dashboard feed"""
    lon, lat = row["location_lon"], row["location_lat"]
    return {
        "id": str(row["id"]),
        "type": row["emergency_type"],
        "location": row["location_address"] or f"{lat:.4f}, {lon:.4f}",
        "urgency": row["urgency"].capitalize(),
        "time": time_ago(row["created_at"], now),
        "status": row["status"],
        "description": row["description"],
        "coordinates": [lon, lat],
        "reporter": {"name": row["reporter_name"], "email": row["reporter_email"]},
    }


def group_counts(rows) -> list:
    return [{"_id": row["_id"], "count": row["count"]} for row in rows]
