import math
from datetime import datetime
from typing import Optional, Tuple

from rescue_hub.shared.errors import ValidationError, InvalidTransitionError

EMERGENCY_TYPES = (
    "Medical Emergency",
    "Accident",
    "Flood",
    "Fire",
    "Building Collapse",
    "Elderly Assistance",
    "Other",
)
URGENCY_LEVELS = ("low", "medium", "high", "critical")
STATUSES = ("pending", "assigned", "in-progress", "resolved", "cancelled")
ACTIVE_STATUSES = ("pending", "assigned", "in-progress")
NEARBY_STATUSES = ("pending", "assigned")
TERMINAL_STATUSES = ("resolved", "cancelled")
MAX_DESCRIPTION_LENGTH = 500

# Legal status changes: current status -> statuses it may move to
TRANSITIONS = {
    "pending": ("assigned", "cancelled"),
    "assigned": ("in-progress", "cancelled"),
    "in-progress": ("resolved", "cancelled"),
    "resolved": (),
    "cancelled": (),
}

SUGGESTED_RESOURCES = {
    "Medical Emergency": ["Ambulance", "Paramedics", "Nearby Hospital"],
    "Accident": ["Police", "Ambulance", "Fire Department"],
    "Flood": ["Rescue Team", "Boats", "Shelter"],
    "Fire": ["Fire Department", "Ambulance", "Police"],
    "Building Collapse": ["Heavy Equipment", "Rescue Team", "Medical Team"],
    "Elderly Assistance": ["Medical Support", "Social Workers"],
    "Other": ["General Support"],
}
CLASSIFICATION_CONFIDENCE = 0.85

EARTH_RADIUS_M = 6371000


def classify(emergency_type: str) -> dict:
    """Static lookup of the resources an emergency type usually needs"""
    if emergency_type not in SUGGESTED_RESOURCES:
        return {
            "category": "Other",
            "confidence": CLASSIFICATION_CONFIDENCE,
            "suggestedResources": ["General Support"],
        }
    return {
        "category": emergency_type,
        "confidence": CLASSIFICATION_CONFIDENCE,
        "suggestedResources": list(SUGGESTED_RESOURCES[emergency_type]),
    }


def _coordinate(value) -> float:
    if isinstance(value, bool):
        raise ValidationError("Location coordinates must be numbers")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValidationError("Location coordinates must be numbers")
    if not math.isfinite(number):
        raise ValidationError("Location coordinates must be finite numbers")
    return number


def parse_location(location) -> Tuple[float, float, Optional[str]]:
    """
    Normalize a reported location to (longitude, latitude, address).

    Accepts "latitude, longitude" text (the text doubles as the address)
    or a mapping/object with coordinates [longitude, latitude] and an
    optional address.
    """
    if isinstance(location, str):
        parts = [part.strip() for part in location.split(",")]
        if len(parts) != 2:
            raise ValidationError("Location must be given as 'latitude, longitude'")
        lat, lon = _coordinate(parts[0]), _coordinate(parts[1])
        address = location.strip()
    else:
        if isinstance(location, dict):
            coordinates, address = location.get("coordinates"), location.get("address")
        else:
            coordinates, address = location.coordinates, location.address
        if not isinstance(coordinates, (list, tuple)) or len(coordinates) != 2:
            raise ValidationError("Location coordinates must be [longitude, latitude]")
        lon, lat = _coordinate(coordinates[0]), _coordinate(coordinates[1])

    if not -90 <= lat <= 90 or not -180 <= lon <= 180:
        raise ValidationError("Location coordinates are out of range")
    return lon, lat, address


def validate_report(emergency_type, description, urgency, location) -> None:
    if not emergency_type or not description or not description.strip() or not location:
        raise ValidationError("Please provide emergency type, description, and location")
    if emergency_type not in EMERGENCY_TYPES:
        raise ValidationError(f"Invalid emergency type: {emergency_type}")
    if len(description) > MAX_DESCRIPTION_LENGTH:
        raise ValidationError("Description cannot be more than 500 characters")
    if urgency not in URGENCY_LEVELS:
        raise ValidationError(f"Invalid urgency: {urgency}")


def check_transition(current: str, new: str) -> None:
    """Raise InvalidTransitionError unless current -> new is a legal status change"""
    if new not in STATUSES:
        raise InvalidTransitionError(f"Unknown status: {new}")
    if new not in TRANSITIONS.get(current, ()):
        raise InvalidTransitionError(f"Cannot change status from {current} to {new}")


def compute_response_time(created_at: datetime, resolved_at: datetime) -> int:
    """Whole minutes between report and resolution"""
    seconds = (resolved_at - created_at).total_seconds()
    return max(0, math.floor(seconds / 60))


def haversine(lat1, lon1, lat2, lon2) -> float:
    """Great-circle distance in metres"""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlambda = math.radians(lon2 - lon1)
    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    return 2 * EARTH_RADIUS_M * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def bounding_box(lon: float, lat: float, meters: float) -> Tuple[float, float, float, float]:
    """(min_lat, max_lat, min_lon, max_lon) enclosing a circle of the given radius"""
    lat_delta = math.degrees(meters / EARTH_RADIUS_M)
    min_lat, max_lat = max(-90.0, lat - lat_delta), min(90.0, lat + lat_delta)
    cos_lat = math.cos(math.radians(lat))
    if cos_lat < 1e-6 or max_lat >= 90.0 or min_lat <= -90.0:
        return min_lat, max_lat, -180.0, 180.0
    lon_delta = math.degrees(meters / (EARTH_RADIUS_M * cos_lat))
    if lon - lon_delta < -180.0 or lon + lon_delta > 180.0:
        # circle crosses the antimeridian
        return min_lat, max_lat, -180.0, 180.0
    return min_lat, max_lat, lon - lon_delta, lon + lon_delta


def _user_summary(summary: Optional[dict]) -> Optional[dict]:
    if not summary or summary.get("id") is None:
        return None
    return summary


def format_emergency(row) -> dict:
    """API view of an emergency row; reporter and volunteers are populated when the query joined them"""
    keys = row.keys()
    emergency = {
        "id": row["id"],
        "user": _user_summary(row["reporter"]) if "reporter" in keys else {"id": row["user_id"]},
        "emergencyType": row["emergency_type"],
        "description": row["description"],
        "urgency": row["urgency"],
        "location": {
            "type": "Point",
            "coordinates": [row["location_lon"], row["location_lat"]],
            "address": row["location_address"],
        },
        "contactNumber": row["contact_number"],
        "status": row["status"],
        "assignedVolunteers": (
            row["volunteers"] if "volunteers" in keys
            else [{"id": volunteer_id} for volunteer_id in row["assigned_volunteers"]]
        ),
        "aiClassification": row["ai_classification"],
        "responseTime": row["response_time"],
        "resolvedAt": row["resolved_at"],
        "notes": row["populated_notes"] if "populated_notes" in keys else row["notes"],
        "createdAt": row["created_at"],
        "updatedAt": row["updated_at"],
    }
    return emergency
