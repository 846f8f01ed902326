from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock
from uuid import uuid4


class FakeDatabase:
    """
    Stand-in for rescue_hub.shared.db.Database.
    Each route is (sql fragment, result); the first route whose fragment
    appears in the SQL answers. A callable result receives the params.
    """

    def __init__(self):
        self.routes = []
        self.calls = []
        self.executemany = AsyncMock()

    def on(self, fragment, result):
        self.routes.append((fragment, result))
        return self

    def on_sequence(self, fragment, *results):
        remaining = list(results)
        return self.on(fragment, lambda params: remaining.pop(0))

    async def execute_query(self, sql, params=None, fetch_one=False):
        self.calls.append((sql, params))
        for fragment, result in self.routes:
            if fragment in sql:
                return result(params) if callable(result) else result
        return None if fetch_one else []

    def queries(self, fragment):
        return [(sql, params) for sql, params in self.calls if fragment in sql]


def make_user(user_type="user", **overrides):
    user = {
        "id": uuid4(),
        "name": f"Test {user_type}",
        "email": f"{user_type}-{uuid4().hex[:6]}@example.com",
        "user_type": user_type,
        "is_available": True,
        "fcm_token": None,
        "contact_number": "+15550000000",
        "google_id": None,
        "profile_picture": None,
        "created_at": datetime(2026, 1, 1, tzinfo=timezone.utc),
    }
    user.update(overrides)
    return user


def emergency_row(**overrides):
    """A populated emergency row as returned by populated_select()"""
    created_at = datetime.now(timezone.utc) - timedelta(minutes=30)
    reporter_id = overrides.pop("user_id", uuid4())
    row = {
        "id": uuid4(),
        "user_id": reporter_id,
        "emergency_type": "Fire",
        "description": "Kitchen fire spreading to the hallway",
        "urgency": "high",
        "location_lon": 77.6,
        "location_lat": 12.9,
        "location_address": "12.9,77.6",
        "contact_number": "+15550000000",
        "status": "pending",
        "assigned_volunteers": [],
        "ai_classification": {
            "category": "Fire",
            "confidence": 0.85,
            "suggestedResources": ["Fire Department", "Ambulance", "Police"],
        },
        "response_time": None,
        "resolved_at": None,
        "notes": [],
        "created_at": created_at,
        "updated_at": created_at,
        "reporter": {"id": str(reporter_id), "name": "Reporter", "email": "r@example.com", "contactNumber": None},
        "volunteers": [],
    }
    row.update(overrides)
    return row
