from decimal import Decimal
from uuid import uuid4

import pytest

from rescue_hub.notifications.models import DispatchResult
from rescue_hub.shared.response import serialize_data
from rescue_hub.shared.seed import DEMO_USERS, seed_data


def test_health(client_for):
    response = client_for().get("/")

    assert response.status_code == 200
    assert response.json()["data"]["status"] == "OK"


def test_unknown_route_uses_error_envelope(client_for):
    response = client_for().get("/api/nothing-here")

    assert response.status_code == 404
    assert response.json()["status"] == "error"


def test_query_validation_is_reported_as_400(client_for, reporter):
    response = client_for(reporter).get("/api/emergencies?limit=0")

    assert response.status_code == 400
    assert response.json()["message"].startswith("query.limit")


def test_serialize_data_handles_database_types():
    value = uuid4()
    assert serialize_data({"id": value, "n": [Decimal("1.5")]}) == {"id": str(value), "n": [1.5]}
    assert serialize_data(DispatchResult(success_count=2)) == {"success_count": 2, "failure_count": 0, "error": None}


@pytest.mark.asyncio
async def test_seed_skips_populated_users_table(db):
    db.on("COUNT(*) AS count FROM users", {"count": 3})

    assert await seed_data(db) == 0
    db.executemany.assert_not_called()


@pytest.mark.asyncio
async def test_seed_inserts_demo_accounts(db):
    db.on("COUNT(*) AS count FROM users", {"count": 0})

    assert await seed_data(db) == len(DEMO_USERS)
    _, rows = db.executemany.await_args.args
    assert sorted(row[4] for row in rows) == ["admin", "user", "user", "volunteer", "volunteer"]
    assert all(row[3].startswith("$2") for row in rows)
