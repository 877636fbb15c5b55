TERM = "First Term"

INSTRUCTORS = [
    {"id": "wilson", "name": "Mr. Wilson", "specializations": ["Math"]},
    {"id": "garcia", "name": "Ms. Garcia", "specializations": ["Science"]},
    {
        "id": "lee",
        "name": "Ms. Lee",
        "employmentMode": "part_time",
        "availableDays": ["Mon", "Wednesday"],
        "specializations": ["Art"],
    },
]


def _grid(name, slots=None, status="draft"):
    if slots is None:
        slots = [{"day": "Monday", "periodOrdinal": 0, "subject": "Math", "instructorId": "wilson"}]
    return {"classGroupName": name, "term": TERM, "status": status, "slots": slots}


def test_missing_tenant_header_is_rejected(client):
    response = client.get(f"/api/timetable/Grade5A?term={TERM}", headers={"X-Tenant-ID": ""})
    assert response.status_code == 400


def test_periods_endpoint(client):
    response = client.get("/api/periods")
    assert response.status_code == 200
    payload = response.json()
    assert payload["days"][0] == "Monday"
    assert [item["ordinal"] for item in payload["periods"] if item["isBreak"]] == [3, 6]


def test_save_and_load_round_trip(client):
    response = client.put("/api/timetable/batch", json={"grids": [_grid("Grade5A")]})
    assert response.status_code == 200
    assert response.json()["succeeded"] == 1

    loaded = client.get(f"/api/timetable/Grade5A?term={TERM}")
    assert loaded.status_code == 200
    body = loaded.json()
    assert body["status"] == "draft"
    assert body["slots"] == [
        {"day": "Monday", "periodOrdinal": 0, "subject": "Math", "instructorId": "wilson", "source": "explicit"}
    ]


def test_unknown_grid_is_404(client):
    response = client.get(f"/api/timetable/Nope?term={TERM}")
    assert response.status_code == 404
    assert "not found" in response.json()["message"]


def test_break_slot_is_rejected(client):
    slots = [{"day": "Monday", "periodOrdinal": 3, "subject": "Math"}]
    response = client.put("/api/timetable/batch", json={"grids": [_grid("Grade5A", slots)]})
    assert response.status_code == 400
    assert "break" in response.json()["message"]


def test_conflicting_drafts_save_but_do_not_publish(client):
    grids = [_grid("Grade5A"), _grid("Grade5B")]

    saved = client.put("/api/timetable/batch", json={"grids": grids, "instructors": INSTRUCTORS})
    assert saved.json()["succeeded"] == 2
    assert saved.json()["failed"] == 0

    published = client.post("/api/timetable/batch/publish", json={"grids": grids, "instructors": INSTRUCTORS})
    assert published.status_code == 200
    body = published.json()
    assert body["blocked"] == 2
    cited = {item["classGroupName"]: item["conflicts"][0]["competingClassGroup"] for item in body["outcomes"]}
    assert cited == {"Grade5A": "Grade5B", "Grade5B": "Grade5A"}
    assert client.get(f"/api/timetable/Grade5A?term={TERM}").json()["status"] == "draft"


def test_publish_unpublish_and_notifications(client):
    published = client.post("/api/timetable/batch/publish", json={"grids": [_grid("Grade5A")]})
    assert published.json()["outcomes"][0]["status"] == "published"
    assert published.json()["outcomes"][0]["term"] == TERM
    assert client.get(f"/api/timetable/Grade5A?term={TERM}").json()["status"] == "published"

    unpublished = client.post(f"/api/timetable/Grade5A/unpublish?term={TERM}")
    assert unpublished.status_code == 200
    assert unpublished.json()["slots"] == 1
    assert client.get(f"/api/timetable/Grade5A?term={TERM}").json()["status"] == "draft"

    notifications = client.get("/api/notifications", params={"class_group": "Grade5A"}).json()
    assert sorted(item["notification_type"] for item in notifications) == ["published", "unpublished"]


def test_unpublish_unknown_grid(client):
    response = client.post(f"/api/timetable/Nope/unpublish?term={TERM}")
    assert response.status_code == 404


def test_edit_returns_session_advisory(client):
    response = client.post(
        "/api/timetable/edits",
        json={
            "term": TERM,
            "classGroupName": "Grade5B",
            "action": "assign_instructor",
            "day": "Mon",
            "periodOrdinal": 0,
            "instructorId": "wilson",
            "grids": [_grid("Grade5A"), _grid("Grade5B", [{"day": "Monday", "periodOrdinal": 0, "subject": "Math"}])],
            "instructors": INSTRUCTORS,
        },
    )

    assert response.status_code == 200
    body = response.json()
    assert body["provisional"] is False
    assert body["advisory"] == {
        "conflicting": True,
        "conflictingClassGroup": "Grade5A",
        "message": "Mr. Wilson is busy in Grade5A (Unsaved draft)",
        "source": "session",
    }
    assert body["grid"]["slots"][0]["instructorId"] == "wilson"


def test_edit_on_empty_slot_is_rejected(client):
    response = client.post(
        "/api/timetable/edits",
        json={
            "term": TERM,
            "classGroupName": "Grade5A",
            "action": "assign_instructor",
            "day": "Monday",
            "periodOrdinal": 1,
            "instructorId": "wilson",
        },
    )
    assert response.status_code == 400


def test_edit_set_subject_auto_resolves_instructor(client):
    response = client.post(
        "/api/timetable/edits",
        json={
            "term": TERM,
            "classGroupName": "Grade5A",
            "action": "set_subject",
            "day": "Wednesday",
            "periodOrdinal": 2,
            "subject": "Art",
            "instructors": INSTRUCTORS,
        },
    )
    slot = response.json()["grid"]["slots"][0]
    assert slot["instructorId"] == "lee"
    assert slot["source"] == "auto_resolved"


def test_conflict_check_against_published_store(client):
    client.post("/api/timetable/batch/publish", json={"grids": [_grid("Grade6A")]})

    response = client.post(
        "/api/timetable/conflicts/check",
        json={
            "term": TERM,
            "instructorId": "wilson",
            "day": "Monday",
            "startTime": "09:30",
            "endTime": "10:00",
            "excludeClassGroup": "Grade5A",
            "scope": "publish",
            "instructors": INSTRUCTORS,
        },
    )

    assert response.status_code == 200
    assert response.json()["message"] == "Mr. Wilson is busy in Grade6A (Published)"


def test_auto_fill_endpoint(client):
    response = client.post(
        "/api/generator/auto-fill",
        json={
            "term": TERM,
            "classGroups": [{"classGroupName": "Grade5A", "subjects": [{"name": "Art", "weeklyFrequency": 5}]}],
            "instructors": INSTRUCTORS,
            "allowNonSpecialists": False,
            "seed": 3,
        },
    )

    assert response.status_code == 200
    result = response.json()["results"][0]
    assert set(result["assignments"].values()) == {"lee"}
    assert all(key.split("-")[0] in {"Monday", "Wednesday"} for key in result["assignments"])
    assert result["validation"]["complete"] is False
    assert result["validation"]["warnings"]
