"""Tests de los endpoints HTTP de laboratorio."""

from uuid import uuid4

API = "/api/v1/lab"


async def _create_order(client, *codes, priority="routine"):
    response = await client.post(
        f"{API}/orders",
        json={"patient_id": str(uuid4()), "test_codes": list(codes), "priority": priority},
    )
    assert response.status_code == 201, response.text
    return response.json()


async def test_health(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


async def test_catalog_endpoints(client):
    response = await client.post(
        f"{API}/catalog",
        json={
            "code": "BIO-001",
            "name": "Glucosa en ayunas",
            "price_minor": 800,
            "parameters": [{"name": "Glucosa", "unit": "mg/dL", "ref_min": 70, "ref_max": 100}],
        },
    )
    assert response.status_code == 201, response.text
    param = response.json()["parameters"][0]
    assert param["reference_kind"] == "numeric"
    assert param["reference_range"] == "70 - 100"

    duplicated = await client.post(f"{API}/catalog", json={"code": "BIO-001", "name": "Otra"})
    assert duplicated.status_code == 409

    listing = await client.get(f"{API}/catalog")
    assert [t["code"] for t in listing.json()] == ["BIO-001"]

    patched = await client.patch(f"{API}/catalog/BIO-001", json={"price_minor": 900})
    assert patched.json()["price_minor"] == 900

    missing = await client.get(f"{API}/catalog/NOPE")
    assert missing.status_code == 404
    assert missing.json()["code"] == "unknown_test"


async def test_invalid_parameter_is_rejected(client):
    response = await client.post(
        f"{API}/catalog",
        json={"code": "BAD-001", "name": "Mala", "parameters": [{"name": "Sin referencia"}]},
    )
    assert response.status_code == 422
    assert response.json()["code"] == "invalid_parameter_definition"


async def test_order_flow(client, seeded_catalog, glucose, hemoglobin):
    order = await _create_order(client, "BIO-001", "HEM-001", priority="urgent")
    assert order["status"] == "pending"
    assert order["order_number"].startswith("LAB-")
    order_id = order["id"]
    glucose_detail, cbc_detail = order["details"]

    recorded = await client.post(
        f"{API}/orders/{order_id}/results",
        json={"detail_id": glucose_detail["id"], "parameter_id": str(glucose.id), "value": "450"},
    )
    assert recorded.status_code == 200, recorded.text
    body = recorded.json()
    assert body["classification"] == "critical"
    assert body["order_status"] == "processing"
    assert body["status_advanced"] is True

    await client.post(
        f"{API}/orders/{order_id}/results",
        json={"detail_id": cbc_detail["id"], "parameter_id": str(hemoglobin.id), "value": "13.5"},
    )

    summary = (await client.get(f"{API}/orders/{order_id}/summary")).json()
    assert summary["critical_count"] == 1
    assert summary["normal_count"] == 1
    assert summary["missing_results"] == 1
    assert summary["has_critical"] is True

    without_actor = await client.patch(f"{API}/orders/{order_id}/status", json={"status": "completed"})
    assert without_actor.status_code == 409
    assert without_actor.json()["code"] == "illegal_transition"

    completed = await client.patch(
        f"{API}/orders/{order_id}/status", json={"status": "completed", "actor_id": str(uuid4())}
    )
    assert completed.status_code == 200
    assert completed.json()["status"] == "completed"

    frozen = await client.post(
        f"{API}/orders/{order_id}/results",
        json={"detail_id": glucose_detail["id"], "parameter_id": str(glucose.id), "value": "90"},
    )
    assert frozen.status_code == 409
    assert frozen.json()["code"] == "order_already_finalized"

    audit = (await client.get(f"{API}/orders/{order_id}/audit")).json()
    assert [e["action"] for e in audit] == ["create", "record_result", "record_result", "status_change"]


async def test_result_errors(client, seeded_catalog):
    order = await _create_order(client, "BIO-001")
    detail_id = order["details"][0]["id"]

    no_parameter = await client.post(
        f"{API}/orders/{order['id']}/results", json={"detail_id": detail_id, "value": "90"}
    )
    assert no_parameter.status_code == 422
    assert no_parameter.json()["code"] == "parameter_required_for_test"

    unknown_parameter = await client.post(
        f"{API}/orders/{order['id']}/results",
        json={"detail_id": detail_id, "parameter_id": str(uuid4()), "value": "90"},
    )
    assert unknown_parameter.status_code == 404
    assert unknown_parameter.json()["code"] == "unknown_parameter"

    unknown_detail = await client.post(
        f"{API}/orders/{order['id']}/results",
        json={"detail_id": str(uuid4()), "parameter_id": str(uuid4()), "value": "90"},
    )
    assert unknown_detail.json()["code"] == "unknown_detail"

    missing_order = await client.get(f"{API}/orders/{uuid4()}")
    assert missing_order.status_code == 404


async def test_order_creation_errors(client, seeded_catalog):
    empty = await client.post(f"{API}/orders", json={"patient_id": str(uuid4()), "test_codes": []})
    assert empty.status_code == 422
    assert empty.json()["code"] == "empty_test_selection"

    unknown = await client.post(f"{API}/orders", json={"patient_id": str(uuid4()), "test_codes": ["NOPE"]})
    assert unknown.status_code == 404


async def test_listing_and_dashboard(client, seeded_catalog):
    await _create_order(client, "BIO-001")
    await _create_order(client, "HEM-001", priority="urgent")

    listing = (await client.get(f"{API}/orders", params={"priority": "urgent"})).json()
    assert listing["total"] == 1
    assert listing["urgent_count"] == 1

    stats = (await client.get(f"{API}/dashboard")).json()
    assert stats["total_orders"] == 2
    assert stats["pending_orders"] == 2
    assert stats["urgent_orders"] == 1


async def test_patch_with_null_required_field(client, seeded_catalog):
    for field in ("name", "sample_type", "price_minor", "duration_hours", "is_active"):
        response = await client.patch(f"{API}/catalog/BIO-001", json={field: None})
        assert response.status_code == 422, field

    cleared = await client.patch(f"{API}/catalog/BIO-001", json={"category": None})
    assert cleared.status_code == 200
    assert cleared.json()["category"] is None


async def test_review_endpoint(client, seeded_catalog, glucose):
    order = await _create_order(client, "BIO-001")
    detail_id = order["details"][0]["id"]
    recorded = await client.post(
        f"{API}/orders/{order['id']}/results",
        json={"detail_id": detail_id, "parameter_id": str(glucose.id), "value": "90"},
    )
    result_id = recorded.json()["result_id"]
    reviewer = str(uuid4())

    reviewed = await client.post(
        f"{API}/orders/{order['id']}/results/{result_id}/review", json={"reviewed_by": reviewer}
    )
    assert reviewed.status_code == 200, reviewed.text
    assert reviewed.json()["reviewed_by"] == reviewer
    assert reviewed.json()["classification"] == "normal"

    summary = (await client.get(f"{API}/orders/{order['id']}/summary")).json()
    assert summary["reviewed_results"] == 1

    missing = await client.post(
        f"{API}/orders/{order['id']}/results/{uuid4()}/review", json={"reviewed_by": reviewer}
    )
    assert missing.status_code == 404
    assert missing.json()["code"] == "unknown_result"
