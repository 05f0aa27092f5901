"""
Income Records Backend: Records API Integration Tests
========================================================

What:  End-to-end tests through the FastAPI app against a SQLite database.
How:   HTTPX AsyncClient + ASGITransport (see conftest.py). Every test gets
       a fresh database file, so record counts start at zero.

What we test:
    ✅ Create → list → filter → delete → stats flow
    ✅ Validation errors surface as 400 with status "fail"
    ✅ Pagination, default sort, range filters
    ✅ Error bodies for unknown routes, oversized bodies and store failures
    ✅ Security and request-id headers
"""

import asyncio

import pytest

from app.database import Base


class TestCreateRecord:

    @pytest.mark.asyncio
    async def test_create_returns_201_envelope(self, test_client, sample_record_payload):
        response = await test_client.post("/api/records", json=sample_record_payload)

        assert response.status_code == 201
        body = response.json()
        assert body["status"] == "success"
        record = body["data"]["record"]
        assert record["description"] == "Freelance gig"
        assert record["amount"] == 250
        assert record["category"] == "Freelance"
        assert record["id"]
        assert record["createdAt"]
        assert record["updatedAt"]

    @pytest.mark.asyncio
    async def test_create_defaults_category_to_other(self, create_record):
        record = await create_record(description="Side job", amount=10)
        assert record["category"] == "Other"

    @pytest.mark.asyncio
    async def test_create_then_list_contains_record_once(self, test_client, create_record):
        record = await create_record(description="Unique entry", amount=42)

        response = await test_client.get("/api/records")

        ids = [r["id"] for r in response.json()["data"]["records"]]
        assert ids.count(record["id"]) == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "body,field",
        [
            ({"description": "Refund", "amount": -5}, "amount"),
            ({"description": "Gift"}, "amount"),
            ({"amount": 10}, "description"),
            ({"description": "x" * 101, "amount": 10}, "description"),
            ({"description": "Lottery", "amount": 10, "category": "Lottery"}, "category"),
            ({"description": "Bad date", "amount": 10, "date": "not-a-date"}, "date"),
            ({"description": "Flag", "amount": True}, "amount"),
        ],
    )
    async def test_invalid_body_returns_400(self, test_client, body, field):
        response = await test_client.post("/api/records", json=body)

        assert response.status_code == 400
        payload = response.json()
        assert payload["status"] == "fail"
        assert payload["error"] == "validation_error"
        assert payload["details"]["field"] == field

    @pytest.mark.asyncio
    async def test_invalid_body_stores_nothing(self, test_client):
        await test_client.post("/api/records", json={"description": "Refund", "amount": -5})

        response = await test_client.get("/api/records")
        assert response.json()["total"] == 0

    @pytest.mark.asyncio
    async def test_non_object_body_rejected(self, test_client):
        response = await test_client.post("/api/records", json=[1, 2, 3])
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_oversized_body_returns_413(self, test_client):
        body = {"description": "Huge", "amount": 1, "padding": "x" * 20_000}

        response = await test_client.post("/api/records", json=body)

        assert response.status_code == 413
        assert response.json()["error"] == "payload_too_large"

    @pytest.mark.asyncio
    async def test_oversized_body_rejection_is_readable_cross_origin(self, test_client):
        body = {"description": "Huge", "amount": 1, "padding": "x" * 20_000}

        response = await test_client.post(
            "/api/records", json=body, headers={"Origin": "http://localhost:3000"}
        )

        assert response.status_code == 413
        assert response.headers["Access-Control-Allow-Origin"] == "http://localhost:3000"
        assert response.headers["X-Content-Type-Options"] == "nosniff"


class TestListRecords:

    @pytest.mark.asyncio
    async def test_empty_collection(self, test_client):
        response = await test_client.get("/api/records")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "success"
        assert body["results"] == 0
        assert body["total"] == 0
        assert body["totalPages"] == 0
        assert body["currentPage"] == 1
        assert body["data"]["records"] == []
        assert response.headers["X-Total-Count"] == "0"

    @pytest.mark.asyncio
    async def test_pagination_second_page(self, test_client, create_record):
        for amount in range(1, 13):
            await create_record(description=f"Payment {amount}", amount=amount)

        response = await test_client.get(
            "/api/records", params={"sort": "amount", "page": 2, "limit": 5}
        )

        body = response.json()
        assert [r["amount"] for r in body["data"]["records"]] == [6, 7, 8, 9, 10]
        assert body["total"] == 12
        assert body["totalPages"] == 3
        assert body["currentPage"] == 2

    @pytest.mark.asyncio
    async def test_page_past_end_is_empty(self, test_client, create_record):
        for amount in range(3):
            await create_record(amount=amount)

        response = await test_client.get("/api/records", params={"page": 2, "limit": 5})

        body = response.json()
        assert body["data"]["records"] == []
        assert body["total"] == 3

    @pytest.mark.asyncio
    async def test_default_sort_newest_first(self, test_client, create_record):
        await create_record(description="old", date="2023-01-01T00:00:00Z")
        await create_record(description="new", date="2024-06-01T00:00:00Z")
        await create_record(description="mid", date="2023-09-01T00:00:00Z")

        response = await test_client.get("/api/records")

        assert [r["description"] for r in response.json()["data"]["records"]] == [
            "new",
            "mid",
            "old",
        ]

    @pytest.mark.asyncio
    async def test_descending_amount_sort(self, test_client, create_record):
        for amount in (5, 50, 20):
            await create_record(amount=amount)

        response = await test_client.get("/api/records", params={"sort": "-amount"})

        assert [r["amount"] for r in response.json()["data"]["records"]] == [50, 20, 5]

    @pytest.mark.asyncio
    async def test_amount_range_filter(self, test_client, create_record):
        for amount in (10, 100, 1000):
            await create_record(amount=amount)

        response = await test_client.get(
            "/api/records?amount[gte]=50&amount[lt]=1000"
        )

        body = response.json()
        assert [r["amount"] for r in body["data"]["records"]] == [100]
        assert body["total"] == 1

    @pytest.mark.asyncio
    async def test_date_range_filter(self, test_client, create_record):
        await create_record(description="Jan", date="2024-01-10T00:00:00Z")
        await create_record(description="Mar", date="2024-03-10T00:00:00Z")

        response = await test_client.get("/api/records", params={"date__gte": "2024-02-01"})

        assert [r["description"] for r in response.json()["data"]["records"]] == ["Mar"]

    @pytest.mark.asyncio
    async def test_unknown_filter_field_matches_nothing(self, test_client, create_record):
        await create_record()

        response = await test_client.get("/api/records", params={"color": "blue"})

        assert response.status_code == 200
        assert response.json()["total"] == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize("key", ["utm-source", "meta.tag"])
    async def test_non_identifier_filter_key_matches_nothing(
        self, test_client, create_record, key
    ):
        await create_record()

        response = await test_client.get("/api/records", params={key: "x"})

        assert response.status_code == 200
        assert response.json()["total"] == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "params,field",
        [({"page": 10**19}, "page"), ({"limit": 2**63}, "limit")],
    )
    async def test_pagination_beyond_sql_integer_rejected(self, test_client, params, field):
        response = await test_client.get("/api/records", params=params)

        assert response.status_code == 400
        body = response.json()
        assert body["status"] == "fail"
        assert body["details"]["field"] == field

    @pytest.mark.asyncio
    async def test_unknown_operator_rejected(self, test_client):
        response = await test_client.get("/api/records?amount[ne]=5")

        assert response.status_code == 400
        assert response.json()["status"] == "fail"

    @pytest.mark.asyncio
    async def test_unknown_sort_field_rejected(self, test_client):
        response = await test_client.get("/api/records", params={"sort": "-secret"})
        assert response.status_code == 400

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "params",
        [{"page": 0}, {"page": -1}, {"limit": 0}, {"limit": "abc"}],
    )
    async def test_invalid_pagination_rejected(self, test_client, params):
        response = await test_client.get("/api/records", params=params)

        assert response.status_code == 400
        body = response.json()
        assert body["status"] == "fail"
        assert body["error"] == "validation_error"


class TestDeleteRecord:

    @pytest.mark.asyncio
    async def test_concurrent_deletes_exactly_one_succeeds(self, test_client, create_record):
        record = await create_record()
        url = f"/api/records/{record['id']}"

        responses = await asyncio.gather(test_client.delete(url), test_client.delete(url))

        assert sorted(r.status_code for r in responses) == [204, 404]

    @pytest.mark.asyncio
    async def test_delete_then_delete_again(self, test_client, create_record):
        record = await create_record()

        first = await test_client.delete(f"/api/records/{record['id']}")
        second = await test_client.delete(f"/api/records/{record['id']}")

        assert first.status_code == 204
        assert first.content == b""
        assert second.status_code == 404
        assert second.json()["message"] == "No record found with that ID"

    @pytest.mark.asyncio
    async def test_delete_malformed_id_is_404(self, test_client):
        response = await test_client.delete("/api/records/not-an-id")

        assert response.status_code == 404
        assert response.json()["status"] == "fail"


class TestStats:

    @pytest.mark.asyncio
    async def test_stats_empty(self, test_client):
        response = await test_client.get("/api/records/stats")

        assert response.status_code == 200
        assert response.json() == {
            "totalAmount": 0,
            "count": 0,
            "average": 0,
            "categories": [],
        }

    @pytest.mark.asyncio
    async def test_stats_groups_by_category(self, test_client, create_record):
        await create_record(amount=100, category="Salary")
        await create_record(amount=50, category="Salary")
        await create_record(amount=200, category="Bonus")
        await create_record(amount=10)

        body = (await test_client.get("/api/records/stats")).json()

        assert body["totalAmount"] == 360
        assert body["count"] == 4
        assert body["average"] == 90
        assert body["categories"] == [
            {"category": "Bonus", "total": 200, "count": 1},
            {"category": "Salary", "total": 150, "count": 2},
            {"category": "Other", "total": 10, "count": 1},
        ]

    @pytest.mark.asyncio
    async def test_stats_equal_totals_ordered_by_category_name(self, test_client, create_record):
        await create_record(amount=50, category="Salary")
        await create_record(amount=50, category="Bonus")
        await create_record(amount=80, category="Investment")

        body = (await test_client.get("/api/records/stats")).json()

        assert [c["category"] for c in body["categories"]] == ["Investment", "Bonus", "Salary"]

    @pytest.mark.asyncio
    async def test_stats_average_rounded(self, test_client, create_record):
        for amount in (10, 10, 13.33):
            await create_record(amount=amount)

        body = (await test_client.get("/api/records/stats")).json()

        assert body["totalAmount"] == 33.33
        assert body["average"] == 11.11


class TestFreelanceScenario:
    """Create, filter, delete and summarize a single Freelance record."""

    @pytest.mark.asyncio
    async def test_full_lifecycle(self, test_client, create_record):
        await create_record(description="Monthly salary", amount=1000, category="Salary")
        before = (await test_client.get("/api/records/stats")).json()

        created = await create_record(
            description="Logo design", amount=250, category="Freelance"
        )

        filtered = (
            await test_client.get("/api/records", params={"category": "Freelance"})
        ).json()
        assert [r["id"] for r in filtered["data"]["records"]] == [created["id"]]

        during = (await test_client.get("/api/records/stats")).json()
        assert during["totalAmount"] == before["totalAmount"] + 250
        assert during["count"] == before["count"] + 1
        assert {"category": "Freelance", "total": 250, "count": 1} in during["categories"]

        assert (await test_client.delete(f"/api/records/{created['id']}")).status_code == 204
        assert (await test_client.delete(f"/api/records/{created['id']}")).status_code == 404

        after = (await test_client.get("/api/records/stats")).json()
        assert after == before


class TestAppSurface:

    @pytest.mark.asyncio
    async def test_health(self, test_client):
        response = await test_client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "running"
        assert body["database"] == "connected"

    @pytest.mark.asyncio
    async def test_unknown_route(self, test_client):
        response = await test_client.get("/api/nope")

        assert response.status_code == 404
        body = response.json()
        assert body["status"] == "fail"
        assert body["message"] == "Can't find /api/nope on this server!"

    @pytest.mark.asyncio
    async def test_security_and_request_id_headers(self, test_client):
        response = await test_client.get("/api/records")

        assert response.headers["X-Content-Type-Options"] == "nosniff"
        assert response.headers["X-Frame-Options"] == "SAMEORIGIN"
        assert len(response.headers["X-Request-ID"]) == 8

    @pytest.mark.asyncio
    async def test_client_request_id_echoed_in_errors(self, test_client):
        response = await test_client.delete(
            "/api/records/missing", headers={"X-Request-ID": "trace-42"}
        )

        assert response.headers["X-Request-ID"] == "trace-42"
        assert response.json()["request_id"] == "trace-42"

    @pytest.mark.asyncio
    async def test_store_failure_is_generic_500(self, test_app, test_client):
        async with test_app.state.engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)

        response = await test_client.get("/api/records")

        assert response.status_code == 500
        body = response.json()
        assert body["status"] == "error"
        assert body["message"] == "An internal error occurred. Please try again later."
        assert "income_records" not in response.text
