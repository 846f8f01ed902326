"""End-to-end tests of the emergency lifecycle routes."""
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock
from uuid import uuid4

from rescue_hub.shared.errors import DependencyError
from tests.helpers import emergency_row

INSERT = "INSERT INTO emergencies"
BROADCAST = "SELECT id, fcm_token FROM users"
RESPOND = "array_append"
RESPOND_CHECK = "SELECT status, assigned_volunteers FROM emergencies"
STATUS_READ = "SELECT status, created_at FROM emergencies"
STATUS_WRITE = "WHERE id = $1 AND status = $2"


def inserted_row(params):
    """Echo an INSERT's params back the way RETURNING * would"""
    return emergency_row(
        id=params[0],
        user_id=params[1],
        emergency_type=params[2],
        description=params[3],
        urgency=params[4],
        location_lon=params[5],
        location_lat=params[6],
        location_address=params[7],
        contact_number=params[8],
        ai_classification=params[9],
    )


class TestCreateEmergency:
    def test_create_from_text_location(self, client_for, db, reporter):
        db.on(INSERT, inserted_row)

        response = client_for(reporter).post("/api/emergencies", json={
            "emergencyType": "Fire",
            "description": "  Kitchen fire  ",
            "urgency": "critical",
            "location": "12.9,77.6",
        })

        assert response.status_code == 201
        body = response.json()
        assert body["status"] == "success"
        data = body["data"]
        assert data["location"]["coordinates"] == [77.6, 12.9]
        assert data["location"]["address"] == "12.9,77.6"
        assert data["status"] == "pending"
        assert data["description"] == "Kitchen fire"
        assert data["contactNumber"] == reporter["contact_number"]
        assert data["aiClassification"]["suggestedResources"] == ["Fire Department", "Ambulance", "Police"]

    def test_create_broadcasts_to_responders(self, client_for, db, push_client, reporter):
        db.on(INSERT, inserted_row)
        db.on(BROADCAST, [{"id": uuid4(), "fcm_token": "v1"}, {"id": uuid4(), "fcm_token": "a1"}])

        response = client_for(reporter).post("/api/emergencies", json={
            "emergencyType": "Flood",
            "description": "Water rising",
            "urgency": "high",
            "location": {"coordinates": [77.6, 12.9], "address": "MG Road"},
        })

        assert response.status_code == 201
        tokens, title, _, _ = push_client.send_multicast.await_args.args
        assert tokens == ["v1", "a1"]
        assert title == "New HIGH Emergency!"
        assert len(db.executemany.await_args.args[1]) == 2

    def test_create_succeeds_when_push_provider_is_down(self, client_for, db, push_client, reporter):
        db.on(INSERT, inserted_row)
        db.on(BROADCAST, [{"id": uuid4(), "fcm_token": "v1"}])
        push_client.send_multicast = AsyncMock(side_effect=DependencyError("FCM down"))

        response = client_for(reporter).post("/api/emergencies", json={
            "emergencyType": "Accident", "description": "Car crash", "location": "12.9,77.6",
        })

        assert response.status_code == 201
        assert response.json()["data"]["urgency"] == "medium"
        db.executemany.assert_awaited_once()

    def test_create_succeeds_when_recipient_lookup_fails(self, client_for, db, reporter):
        def broken(params):
            raise RuntimeError("pool exhausted")

        db.on(INSERT, inserted_row)
        db.on(BROADCAST, broken)

        response = client_for(reporter).post("/api/emergencies", json={
            "emergencyType": "Fire", "description": "Smoke", "location": "12.9,77.6",
        })

        assert response.status_code == 201

    def test_missing_fields(self, client_for, db, reporter):
        response = client_for(reporter).post("/api/emergencies", json={"emergencyType": "Fire"})

        assert response.status_code == 400
        assert response.json() == {
            "status": "error",
            "message": "Please provide emergency type, description, and location",
            "data": None,
        }
        assert db.queries(INSERT) == []

    def test_malformed_location(self, client_for, db, reporter):
        response = client_for(reporter).post("/api/emergencies", json={
            "emergencyType": "Fire", "description": "Smoke", "location": "north of the river",
        })

        assert response.status_code == 400
        assert db.queries(INSERT) == []

    def test_description_too_long(self, client_for, reporter):
        response = client_for(reporter).post("/api/emergencies", json={
            "emergencyType": "Fire", "description": "x" * 501, "location": "12.9,77.6",
        })

        assert response.status_code == 400

    def test_requires_authentication(self, client_for):
        response = client_for(None).post("/api/emergencies", json={})

        assert response.status_code == 401
        assert response.json()["status"] == "error"


class TestListAndGet:
    def test_default_filter_is_active_statuses(self, client_for, db, reporter):
        db.on("ORDER BY e.created_at DESC", [emergency_row(), emergency_row(status="assigned")])

        response = client_for(reporter).get("/api/emergencies")

        assert response.status_code == 200
        assert len(response.json()["data"]) == 2
        _, params = db.queries("ORDER BY e.created_at DESC")[0]
        assert params == (["pending", "assigned", "in-progress"], 50)

    def test_status_and_urgency_filters(self, client_for, db, reporter):
        db.on("ORDER BY e.created_at DESC", [])

        response = client_for(reporter).get("/api/emergencies?status=resolved,cancelled&urgency=high&limit=5")

        assert response.status_code == 200
        sql, params = db.queries("ORDER BY e.created_at DESC")[0]
        assert params == (["resolved", "cancelled"], "high", 5)
        assert "e.urgency = $2" in sql

    def test_invalid_status_filter(self, client_for, reporter):
        response = client_for(reporter).get("/api/emergencies?status=archived")

        assert response.status_code == 400

    def test_get_single_not_found(self, client_for, reporter):
        response = client_for(reporter).get(f"/api/emergencies/{uuid4()}")

        assert response.status_code == 404
        assert response.json()["message"] == "Emergency not found"

    def test_get_single_malformed_id(self, client_for, reporter):
        response = client_for(reporter).get("/api/emergencies/not-a-uuid")

        assert response.status_code == 400


class TestNearby:
    def test_filters_by_radius_and_sorts_nearest_first(self, client_for, db, volunteer):
        near = emergency_row(location_lat=12.905, location_lon=77.6)
        nearest = emergency_row(location_lat=12.901, location_lon=77.6)
        outside_circle = emergency_row(location_lat=12.94, location_lon=77.64)
        db.on("BETWEEN", [near, outside_circle, nearest])

        response = client_for(volunteer).get("/api/emergencies/nearby?longitude=77.6&latitude=12.9&maxDistance=5000")

        assert response.status_code == 200
        data = response.json()["data"]
        assert [e["id"] for e in data] == [str(nearest["id"]), str(near["id"])]
        assert data[0]["distance"] < data[1]["distance"] <= 5000
        _, params = db.queries("BETWEEN")[0]
        assert params[0] == ["pending", "assigned"]

    def test_caps_results(self, client_for, db, volunteer):
        db.on("BETWEEN", [emergency_row(location_lat=12.9 + i * 0.0001) for i in range(30)])

        response = client_for(volunteer).get("/api/emergencies/nearby?longitude=77.6&latitude=12.9")

        assert len(response.json()["data"]) == 20

    def test_requires_coordinates(self, client_for, volunteer):
        response = client_for(volunteer).get("/api/emergencies/nearby?longitude=77.6")

        assert response.status_code == 400

    def test_reporters_cannot_search(self, client_for, reporter):
        response = client_for(reporter).get("/api/emergencies/nearby?longitude=77.6&latitude=12.9")

        assert response.status_code == 403


class TestRespond:
    def test_first_response_assigns(self, client_for, db, push_client, volunteer):
        emergency_id = uuid4()
        volunteer_summary = {"id": str(volunteer["id"]), "name": volunteer["name"],
                             "email": volunteer["email"], "contactNumber": None}
        db.on(RESPOND, lambda params: emergency_row(
            id=params[0], status="assigned", assigned_volunteers=[params[1]], volunteers=[volunteer_summary]))
        db.on("SELECT fcm_token FROM users WHERE id", {"fcm_token": "reporter-token"})

        response = client_for(volunteer).put(f"/api/emergencies/{emergency_id}/respond")

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["status"] == "assigned"
        assert data["assignedVolunteers"] == [volunteer_summary]
        _, params = db.queries(RESPOND)[0]
        assert params == (emergency_id, volunteer["id"], ["resolved", "cancelled"])
        tokens, title, body, _ = push_client.send_multicast.await_args.args
        assert tokens == ["reporter-token"]
        assert title == "Help is on the way!"
        assert body == "Volunteer A is responding to your Fire request."

    def test_respond_succeeds_when_push_provider_is_down(self, client_for, db, push_client, volunteer):
        db.on(RESPOND, lambda params: emergency_row(id=params[0], status="assigned", assigned_volunteers=[params[1]]))
        db.on("SELECT fcm_token FROM users WHERE id", {"fcm_token": "reporter-token"})
        push_client.send_multicast = AsyncMock(side_effect=DependencyError("FCM down"))

        response = client_for(volunteer).put(f"/api/emergencies/{uuid4()}/respond")

        assert response.status_code == 200
        assert response.json()["data"]["status"] == "assigned"
        push_client.send_multicast.assert_awaited_once()
        db.executemany.assert_awaited_once()

    def test_second_response_by_same_volunteer_conflicts(self, client_for, db, push_client, volunteer):
        emergency_id = uuid4()
        db.on(RESPOND, None)
        db.on(RESPOND_CHECK, {"status": "assigned", "assigned_volunteers": [volunteer["id"]]})

        response = client_for(volunteer).put(f"/api/emergencies/{emergency_id}/respond")

        assert response.status_code == 400
        assert response.json()["message"] == "Already assigned to this emergency"
        push_client.send_multicast.assert_not_called()

    def test_respond_twice_keeps_single_assignment(self, client_for, db, volunteer):
        emergency_id = uuid4()
        db.on_sequence(RESPOND, emergency_row(id=emergency_id, status="assigned",
                                              assigned_volunteers=[volunteer["id"]]), None)
        db.on(RESPOND_CHECK, {"status": "assigned", "assigned_volunteers": [volunteer["id"]]})
        client = client_for(volunteer)

        first = client.put(f"/api/emergencies/{emergency_id}/respond")
        second = client.put(f"/api/emergencies/{emergency_id}/respond")

        assert first.status_code == 200
        assert second.status_code == 400
        assert len(db.queries(RESPOND)) == 2

    def test_respond_to_resolved_emergency(self, client_for, db, volunteer):
        db.on(RESPOND, None)
        db.on(RESPOND_CHECK, {"status": "resolved", "assigned_volunteers": []})

        response = client_for(volunteer).put(f"/api/emergencies/{uuid4()}/respond")

        assert response.status_code == 400
        assert "resolved" in response.json()["message"]

    def test_respond_to_missing_emergency(self, client_for, db, volunteer):
        db.on(RESPOND, None)

        response = client_for(volunteer).put(f"/api/emergencies/{uuid4()}/respond")

        assert response.status_code == 404

    def test_reporters_cannot_respond(self, client_for, db, reporter):
        response = client_for(reporter).put(f"/api/emergencies/{uuid4()}/respond")

        assert response.status_code == 403
        assert db.calls == []


class TestStatusUpdate:
    def test_resolve_records_response_time(self, client_for, db, push_client, volunteer):
        emergency_id = uuid4()
        created_at = datetime.now(timezone.utc) - timedelta(minutes=42, seconds=30)
        db.on(STATUS_READ, {"status": "in-progress", "created_at": created_at})
        db.on(STATUS_WRITE, lambda params: emergency_row(
            id=params[0], status=params[2], resolved_at=params[3], response_time=params[4], created_at=created_at))
        db.on("SELECT fcm_token FROM users WHERE id", {"fcm_token": "reporter-token"})

        response = client_for(volunteer).put(f"/api/emergencies/{emergency_id}/status", json={"status": "resolved"})

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["status"] == "resolved"
        assert data["responseTime"] == 42
        assert data["resolvedAt"] is not None
        _, title, _, push_data = push_client.send_multicast.await_args.args
        assert title == "Emergency Resolved"
        assert push_data["responseTime"] == 42

    def test_resolve_succeeds_when_push_provider_is_down(self, client_for, db, push_client, volunteer):
        created_at = datetime.now(timezone.utc) - timedelta(minutes=15, seconds=10)
        db.on(STATUS_READ, {"status": "in-progress", "created_at": created_at})
        db.on(STATUS_WRITE, lambda params: emergency_row(
            id=params[0], status=params[2], resolved_at=params[3], response_time=params[4], created_at=created_at))
        db.on("SELECT fcm_token FROM users WHERE id", {"fcm_token": "reporter-token"})
        push_client.send_multicast = AsyncMock(side_effect=DependencyError("FCM down"))

        response = client_for(volunteer).put(f"/api/emergencies/{uuid4()}/status", json={"status": "resolved"})

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["status"] == "resolved"
        assert data["responseTime"] == 15
        push_client.send_multicast.assert_awaited_once()

    def test_resolving_twice_is_rejected(self, client_for, db, volunteer):
        db.on(STATUS_READ, {"status": "resolved", "created_at": datetime.now(timezone.utc)})

        response = client_for(volunteer).put(f"/api/emergencies/{uuid4()}/status", json={"status": "resolved"})

        assert response.status_code == 400
        assert db.queries(STATUS_WRITE) == []

    def test_in_progress_notifies_reporter(self, client_for, db, push_client, volunteer):
        db.on(STATUS_READ, {"status": "assigned", "created_at": datetime.now(timezone.utc)})
        db.on(STATUS_WRITE, lambda params: emergency_row(id=params[0], status=params[2]))
        db.on("SELECT fcm_token FROM users WHERE id", {"fcm_token": "reporter-token"})

        response = client_for(volunteer).put(f"/api/emergencies/{uuid4()}/status", json={"status": "in-progress"})

        assert response.status_code == 200
        _, title, body, _ = push_client.send_multicast.await_args.args
        assert title == "Help is Arriving!"
        assert body == "Volunteer is now on the way to your location."
        _, rows = db.executemany.await_args.args
        assert rows[0][2] == "status_update"

    def test_cancel_sends_no_notification(self, client_for, db, push_client, admin):
        db.on(STATUS_READ, {"status": "pending", "created_at": datetime.now(timezone.utc)})
        db.on(STATUS_WRITE, lambda params: emergency_row(id=params[0], status=params[2]))

        response = client_for(admin).put(f"/api/emergencies/{uuid4()}/status", json={"status": "cancelled"})

        assert response.status_code == 200
        push_client.send_multicast.assert_not_called()

    def test_illegal_jump(self, client_for, db, volunteer):
        db.on(STATUS_READ, {"status": "pending", "created_at": datetime.now(timezone.utc)})

        response = client_for(volunteer).put(f"/api/emergencies/{uuid4()}/status", json={"status": "resolved"})

        assert response.status_code == 400
        assert response.json()["message"] == "Cannot change status from pending to resolved"

    def test_concurrent_change_is_a_conflict(self, client_for, db, volunteer):
        db.on(STATUS_READ, {"status": "assigned", "created_at": datetime.now(timezone.utc)})
        db.on(STATUS_WRITE, None)

        response = client_for(volunteer).put(f"/api/emergencies/{uuid4()}/status", json={"status": "in-progress"})

        assert response.status_code == 400
        assert "another request" in response.json()["message"]

    def test_missing_status(self, client_for, volunteer):
        response = client_for(volunteer).put(f"/api/emergencies/{uuid4()}/status", json={})

        assert response.status_code == 400
        assert response.json()["message"] == "Status is required"

    def test_not_found(self, client_for, volunteer):
        response = client_for(volunteer).put(f"/api/emergencies/{uuid4()}/status", json={"status": "assigned"})

        assert response.status_code == 404


class TestNotes:
    def test_note_is_appended_with_author_summary(self, client_for, db, reporter):
        author = {"id": str(reporter["id"]), "name": reporter["name"], "email": reporter["email"]}

        def appended(params):
            stored = params[1]
            populated = [{**note, "addedBy": author} for note in stored]
            return emergency_row(id=params[0], notes=stored, populated_notes=populated)

        db.on("notes = notes ||", appended)

        response = client_for(reporter).post(f"/api/emergencies/{uuid4()}/notes", json={"text": " Gas smell "})

        assert response.status_code == 200
        notes = response.json()["data"]["notes"]
        assert len(notes) == 1
        assert notes[0]["text"] == "Gas smell"
        assert notes[0]["addedBy"] == author
        sql, params = db.queries("notes = notes ||")[0]
        assert "AS populated_notes" in sql
        assert params[1][0]["addedBy"] == str(reporter["id"])

    def test_empty_note(self, client_for, reporter):
        response = client_for(reporter).post(f"/api/emergencies/{uuid4()}/notes", json={"text": "   "})

        assert response.status_code == 400

    def test_note_on_missing_emergency(self, client_for, reporter):
        response = client_for(reporter).post(f"/api/emergencies/{uuid4()}/notes", json={"text": "hello"})

        assert response.status_code == 404
