"""Integration tests for API endpoints."""

import pytest


async def provision(client, headers, data):
    response = await client.post("/v1/room/provision", json=data, headers=headers)
    assert response.status_code == 201
    return response.json()


def stay(room_id, day, start, end, **extra):
    payload = {
        "room_id": room_id,
        "check_in": day(start).isoformat(),
        "check_out": day(end).isoformat(),
        "guests": 1,
        "guest_ref": "guest-1",
    }
    payload.update(extra)
    return payload


@pytest.mark.asyncio
async def test_provision_room_endpoint(test_client, auth_headers, sample_room_data):
    """Test the room provisioning endpoint."""
    data = await provision(test_client, auth_headers, sample_room_data)

    assert data["number"] == "101"
    assert data["status"] == "available"
    assert data["amenities"] == ["wifi", "tv"]
    assert "id" in data


@pytest.mark.asyncio
async def test_provision_room_missing_auth(test_client, sample_room_data):
    """Test room provisioning without authentication."""
    response = await test_client.post("/v1/room/provision", json=sample_room_data)

    assert response.status_code == 401
    assert response.headers["content-type"].startswith("application/problem+json")
    data = response.json()
    assert data["status"] == 401
    assert "authentication" in data["title"].lower()


@pytest.mark.asyncio
async def test_provision_room_invalid_token(test_client, sample_room_data):
    response = await test_client.post(
        "/v1/room/provision",
        json=sample_room_data,
        headers={"Authorization": "Bearer not-a-jwt"},
    )
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_provision_room_invalid_data(test_client, auth_headers, sample_room_data):
    """Test room provisioning with invalid data."""
    invalid_data = {**sample_room_data, "capacity": 0}

    response = await test_client.post("/v1/room/provision", json=invalid_data, headers=auth_headers)

    assert response.status_code == 422
    data = response.json()
    assert data["status"] == 422
    assert any(v["path"].endswith("capacity") for v in data["violations"])


@pytest.mark.asyncio
async def test_duplicate_room_number(test_client, auth_headers, sample_room_data):
    await provision(test_client, auth_headers, sample_room_data)

    response = await test_client.post("/v1/room/provision", json=sample_room_data, headers=auth_headers)

    assert response.status_code == 409
    assert response.json()["code"] == "ROOM_NUMBER_TAKEN"


@pytest.mark.asyncio
async def test_create_booking_endpoint(test_client, auth_headers, sample_room_data, day):
    room = await provision(test_client, auth_headers, sample_room_data)

    response = await test_client.post(
        "/v1/booking/create",
        json=stay(room["id"], day, 2, 5, total_amount="360.00"),
        headers=auth_headers,
    )

    assert response.status_code == 201
    data = response.json()
    assert data["status"] == "confirmed"
    assert data["nights"] == 3
    assert data["remaining_amount"] == "360.00"


@pytest.mark.asyncio
async def test_overlapping_booking_is_conflict(test_client, auth_headers, sample_room_data, day):
    room = await provision(test_client, auth_headers, sample_room_data)
    first = await test_client.post("/v1/booking/create", json=stay(room["id"], day, 2, 5), headers=auth_headers)

    response = await test_client.post(
        "/v1/booking/create",
        json=stay(room["id"], day, 4, 6, guest_ref="guest-2"),
        headers=auth_headers,
    )

    assert response.status_code == 409
    assert response.headers["content-type"].startswith("application/problem+json")
    problem = response.json()
    assert problem["code"] == "INTERVAL_CONFLICT"
    assert problem["retryable"] is True
    assert problem["instance"] == "/v1/booking/create"
    assert problem["context"]["conflicting_bookings"] == [first.json()["id"]]


@pytest.mark.asyncio
async def test_back_to_back_bookings(test_client, auth_headers, sample_room_data, day):
    room = await provision(test_client, auth_headers, sample_room_data)
    await test_client.post("/v1/booking/create", json=stay(room["id"], day, 2, 5), headers=auth_headers)

    response = await test_client.post(
        "/v1/booking/create",
        json=stay(room["id"], day, 5, 7, guest_ref="guest-2"),
        headers=auth_headers,
    )

    assert response.status_code == 201


@pytest.mark.asyncio
async def test_invalid_dates_are_unprocessable(test_client, auth_headers, sample_room_data, day):
    room = await provision(test_client, auth_headers, sample_room_data)

    response = await test_client.post("/v1/booking/create", json=stay(room["id"], day, 5, 5), headers=auth_headers)

    assert response.status_code == 422
    problem = response.json()
    assert problem["code"] == "DATE_RANGE_INVALID"
    assert problem["retryable"] is False


@pytest.mark.asyncio
async def test_idempotent_create(test_client, auth_headers, sample_room_data, day):
    room = await provision(test_client, auth_headers, sample_room_data)
    headers = {**auth_headers, "Idempotency-Key": "create-abc"}
    payload = stay(room["id"], day, 2, 5)

    first = await test_client.post("/v1/booking/create", json=payload, headers=headers)
    second = await test_client.post("/v1/booking/create", json=payload, headers=headers)

    assert first.status_code == second.status_code == 201
    assert first.json()["id"] == second.json()["id"]

    changed = await test_client.post(
        "/v1/booking/create",
        json={**payload, "guests": 2},
        headers=headers,
    )
    assert changed.status_code == 409
    assert changed.json()["code"] == "IDEMPOTENCY_KEY_MISMATCH"


@pytest.mark.asyncio
async def test_availability_endpoint(test_client, auth_headers, sample_room_data, day):
    room = await provision(test_client, auth_headers, sample_room_data)
    await test_client.post("/v1/booking/create", json=stay(room["id"], day, 2, 5), headers=auth_headers)

    free = await test_client.post(
        "/v1/booking/availability",
        json={"room_id": room["id"], "check_in": day(5).isoformat(), "check_out": day(6).isoformat(), "guests": 2},
    )
    taken = await test_client.post(
        "/v1/booking/availability",
        json={"room_id": room["id"], "check_in": day(3).isoformat(), "check_out": day(4).isoformat(), "guests": 1},
    )

    assert free.json() == {"available": True, "reason": None, "detail": None}
    assert taken.status_code == 200
    assert taken.json()["available"] is False
    assert taken.json()["reason"] == "INTERVAL_CONFLICT"


@pytest.mark.asyncio
async def test_cancel_frees_the_room(test_client, auth_headers, sample_room_data, day):
    room = await provision(test_client, auth_headers, sample_room_data)
    booking = (await test_client.post(
        "/v1/booking/create", json=stay(room["id"], day, 2, 5), headers=auth_headers
    )).json()

    response = await test_client.post(
        "/v1/booking/cancel",
        json={"booking_id": booking["id"], "reason": "Change of plans"},
        headers=auth_headers,
    )

    assert response.status_code == 200
    assert response.json()["status"] == "cancelled"

    again = await test_client.post(
        "/v1/booking/cancel", json={"booking_id": booking["id"]}, headers=auth_headers
    )
    assert again.status_code == 409
    assert again.json()["title"] == "Invalid State"

    rebook = await test_client.post(
        "/v1/booking/create", json=stay(room["id"], day, 3, 4, guest_ref="guest-2"), headers=auth_headers
    )
    assert rebook.status_code == 201


@pytest.mark.asyncio
async def test_room_calendar_endpoint(test_client, auth_headers, sample_room_data, day):
    room = await provision(test_client, auth_headers, sample_room_data)
    booking = (await test_client.post(
        "/v1/booking/create", json=stay(room["id"], day, 2, 5), headers=auth_headers
    )).json()

    response = await test_client.post("/v1/room/calendar", json={"room_id": room["id"]})

    assert response.status_code == 200
    assert response.json()["entries"] == [
        {"booking_id": booking["id"], "check_in": day(2).isoformat(), "check_out": day(5).isoformat()}
    ]


@pytest.mark.asyncio
async def test_get_unknown_booking(test_client):
    response = await test_client.post(
        "/v1/booking/get", json={"booking_id": "00000000-0000-0000-0000-000000000000"}
    )

    assert response.status_code == 404
    assert response.json()["code"] == "BOOKING_NOT_FOUND"


@pytest.mark.asyncio
async def test_block_and_search(test_client, auth_headers, sample_room_data, day):
    room = await provision(test_client, auth_headers, sample_room_data)
    other = await provision(test_client, auth_headers, {**sample_room_data, "number": "102"})

    blocked = await test_client.post(
        "/v1/room/block",
        json={"room_id": room["id"], "reason": "Repainting", "kind": "maintenance"},
        headers=auth_headers,
    )
    assert blocked.json()["status"] == "maintenance"

    search = await test_client.post(
        "/v1/room/search",
        json={"check_in": day(1).isoformat(), "check_out": day(3).isoformat(), "guests": 2},
    )
    assert [r["id"] for r in search.json()["items"]] == [other["id"]]

    refused = await test_client.post(
        "/v1/booking/create", json=stay(room["id"], day, 1, 3), headers=auth_headers
    )
    assert refused.status_code == 409
    assert refused.json()["code"] == "ROOM_BLOCKED"


@pytest.mark.asyncio
async def test_list_bookings_by_room(test_client, auth_headers, sample_room_data, day):
    room = await provision(test_client, auth_headers, sample_room_data)
    for start in (6, 2):
        await test_client.post(
            "/v1/booking/create", json=stay(room["id"], day, start, start + 2), headers=auth_headers
        )

    response = await test_client.post("/v1/booking/list", json={"room_id": room["id"]})

    check_ins = [b["check_in"] for b in response.json()["items"]]
    assert check_ins == [day(2).isoformat(), day(6).isoformat()]


@pytest.mark.asyncio
async def test_decommission_keeps_rooms_with_history(test_client, auth_headers, sample_room_data, day):
    room = await provision(test_client, auth_headers, sample_room_data)
    spare = await provision(test_client, auth_headers, {**sample_room_data, "number": "102"})
    booking = (await test_client.post(
        "/v1/booking/create", json=stay(room["id"], day, 2, 5), headers=auth_headers
    )).json()
    await test_client.post("/v1/booking/cancel", json={"booking_id": booking["id"]}, headers=auth_headers)

    refused = await test_client.post("/v1/room/decommission", json={"room_id": room["id"]}, headers=auth_headers)
    assert refused.status_code == 409
    assert refused.json()["code"] == "ROOM_HAS_HISTORY"

    removed = await test_client.post("/v1/room/decommission", json={"room_id": spare["id"]}, headers=auth_headers)
    assert removed.status_code == 200
    assert removed.json()["number"] == "102"
