"""
HTTP API through the full application

create_app() with a test container (SQLite + mocks), driven by httpx's
ASGITransport. Every JSON response is checked for the common envelope.
"""

from uuid import UUID, uuid4

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from inspection_engine.api.main import create_app
from inspection_engine.llm.mock import MockVisionModel

VIN = "1HGBH41JXMN109186"
IMAGE = "https://cdn.example.test/front.jpg"
V2 = "/api/v2"


# ============================================================
# Fixtures
# ============================================================


@pytest.fixture
def app(container) -> FastAPI:
    return create_app(container=container)


@pytest.fixture
async def client(app: FastAPI):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as http_client:
        yield http_client


def _body(**overrides) -> dict:
    body = {"vin": VIN, "media": [{"type": "image", "url": IMAGE}], "shopId": "shop-1"}
    body.update(overrides)
    return body


# ============================================================
# v2 submission
# ============================================================


@pytest.mark.asyncio
async def test_invalid_vin_is_field_level_400(client: AsyncClient) -> None:
    response = await client.post(f"{V2}/inspect", json=_body(vin="1HGBH41JXMN10918O"))

    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert body["data"] is None
    assert body["error"]["code"] == "VALIDATION.INVALID_INPUT"
    assert body["error"]["details"]["category"] == "validation"
    fields = [e["field"] for e in body["error"]["details"]["errors"]]
    assert fields == ["vin"]


@pytest.mark.asyncio
async def test_empty_media_is_400(client: AsyncClient) -> None:
    response = await client.post(f"{V2}/inspect", json=_body(media=[]))

    assert response.status_code == 400
    assert response.json()["error"]["details"]["errors"][0]["field"] == "media"


@pytest.mark.asyncio
async def test_synchronous_submission_returns_result(client: AsyncClient) -> None:
    response = await client.post(f"{V2}/inspect", json=_body())

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["error"] is None
    assert body["meta"]["requestId"]
    assert response.headers["X-Request-ID"] == body["meta"]["requestId"]

    data = body["data"]
    assert data["success"] is True
    assert UUID(data["inspectionId"])
    assert data["status"] == "complete"
    assert isinstance(data["processingTime"], int)
    result = data["result"]
    assert result["vin"] == VIN
    assert result["shopId"] == "shop-1"
    [damage] = result["damages"]
    assert damage["type"] == "dent"
    assert damage["severity"] == "medium"
    assert damage["estimatedCost"] == 300.0
    assert result["estimate"]["totalCost"] == 300.0
    [item] = result["estimate"]["items"]
    assert item["damageId"] == damage["id"]
    assert item["totalCost"] == 300.0


@pytest.mark.asyncio
async def test_synchronous_failure_is_500_with_category(
    client: AsyncClient, vision_model: MockVisionModel
) -> None:
    vision_model._responses.extend([RuntimeError("model offline")] * 3)

    response = await client.post(f"{V2}/inspect", json=_body())

    assert response.status_code == 500
    error = response.json()["error"]
    assert error["code"] == "INSPECTION.FAILED"
    assert error["details"]["category"] == "upstream_ai"


@pytest.mark.asyncio
async def test_synchronous_timeout_is_500(client: AsyncClient, container, vision_model) -> None:
    vision_model.latency_seconds = 0.3
    container.inspections.sync_timeout_seconds = 0.05

    response = await client.post(f"{V2}/inspect", json=_body())

    assert response.status_code == 500
    error = response.json()["error"]
    assert error["code"] == "INSPECTION.TIMEOUT"
    assert error["details"]["category"] == "timeout"
    assert error["hint"].startswith("Poll /api/v2/inspect/")


@pytest.mark.asyncio
async def test_streaming_submission_is_acknowledged(client: AsyncClient, container) -> None:
    response = await client.post(
        f"{V2}/inspect", json=_body(options={"enableStreaming": True, "priority": "high"})
    )

    assert response.status_code == 202
    data = response.json()["data"]
    assert data["status"] == "processing"
    assert data["streamUrl"] == f"/api/v2/inspect/{data['inspectionId']}/stream"
    assert data["estimatedCompletion"]

    await container.inspections.shutdown(timeout=5.0)
    fetched = await client.get(f"{V2}/inspect/{data['inspectionId']}")
    assert fetched.json()["data"]["status"] == "complete"


# ============================================================
# v2 reads
# ============================================================


@pytest.mark.asyncio
async def test_unknown_inspection_is_404(client: AsyncClient) -> None:
    response = await client.get(f"{V2}/inspect/{uuid4()}")

    assert response.status_code == 404
    body = response.json()
    assert body["success"] is False
    assert body["error"]["code"] == "RESOURCE.NOT_FOUND"


@pytest.mark.asyncio
async def test_malformed_inspection_id_is_400(client: AsyncClient) -> None:
    response = await client.get(f"{V2}/inspect/not-a-uuid")

    assert response.status_code == 400


@pytest.mark.asyncio
async def test_get_by_query_parameter(client: AsyncClient, container) -> None:
    inspection = await container.inspections.submit(vin=VIN, media=[{"type": "image", "url": IMAGE}])

    response = await client.get(f"{V2}/inspect", params={"id": str(inspection.id)})

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["inspectionId"] == str(inspection.id)
    assert data["status"] == "pending"
    assert data["estimate"] is None
    assert data["progress"]["currentStep"] == "queued"


@pytest.mark.asyncio
async def test_request_schema_is_published(client: AsyncClient) -> None:
    response = await client.get(f"{V2}/inspect/schema")

    assert response.status_code == 200
    schema = response.json()["data"]
    assert "vin" in schema["properties"]
    assert "shopId" in schema["properties"]


@pytest.mark.asyncio
async def test_stream_of_finished_inspection_sends_status_and_closes(
    client: AsyncClient, container
) -> None:
    inspection = await container.inspections.submit(vin=VIN, media=[{"type": "image", "url": IMAGE}])
    await container.inspections.process(inspection.id)

    response = await client.get(f"{V2}/inspect/{inspection.id}/stream")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")
    assert response.text.startswith("event: status\n")
    assert '"status": "complete"' in response.text
    assert container.broker.subscriber_count(str(inspection.id)) == 0


@pytest.mark.asyncio
async def test_retry_of_completed_inspection_is_409(client: AsyncClient, container) -> None:
    inspection = await container.inspections.submit(vin=VIN, media=[{"type": "image", "url": IMAGE}])
    await container.inspections.process(inspection.id)

    response = await client.post(f"{V2}/inspect/{inspection.id}/retry")

    assert response.status_code == 409
    assert response.json()["error"]["code"] == "INSPECTION.INVALID_STATUS"


@pytest.mark.asyncio
async def test_retry_of_failed_inspection_is_accepted(
    client: AsyncClient, container, vision_model: MockVisionModel
) -> None:
    vision_model._responses.extend([RuntimeError("model offline")] * 3)
    inspection = await container.inspections.submit(vin=VIN, media=[{"type": "image", "url": IMAGE}])
    await container.inspections.process(inspection.id)

    response = await client.post(f"{V2}/inspect/{inspection.id}/retry")

    assert response.status_code == 202
    assert response.json()["data"]["attemptCount"] == 1


# ============================================================
# v1 upload
# ============================================================


def _files(count: int, content_type: str = "image/jpeg") -> list:
    return [("files", (f"photo-{i}.jpg", b"\xff\xd8fake-jpeg", content_type)) for i in range(count)]


@pytest.mark.asyncio
async def test_v1_upload_accepts_three_images(client: AsyncClient, container) -> None:
    response = await client.post(
        "/api/v1/inspect", data={"vin": VIN, "shop_id": "shop-1"}, files=_files(3)
    )

    assert response.status_code == 202
    data = response.json()["data"]
    assert data["status"] == "pending"
    assert data["mediaCount"] == 3
    assert container.window.snapshot("upload").successes == 1

    await container.inspections.shutdown(timeout=5.0)
    stored = await container.inspections.get_inspection(UUID(data["inspectionId"]))
    assert stored.api_version == "1"
    assert all(m["url"].startswith("http://test/uploads/shop-1/") for m in stored.media)


@pytest.mark.asyncio
async def test_v1_upload_requires_three_images(client: AsyncClient, container) -> None:
    response = await client.post("/api/v1/inspect", data={"vin": VIN}, files=_files(2))

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "VALIDATION.INVALID_INPUT"
    assert container.window.snapshot("upload").failures == 1


@pytest.mark.asyncio
async def test_v1_upload_rejects_non_images(client: AsyncClient, container) -> None:
    response = await client.post(
        "/api/v1/inspect", data={"vin": VIN}, files=_files(3, content_type="application/pdf")
    )

    assert response.status_code == 400
    assert container.window.snapshot("upload").failures == 1


def _stored_files(container) -> list:
    root = container.storage.root
    return [p for p in root.rglob("*") if p.is_file()] if root.exists() else []


@pytest.mark.asyncio
async def test_v1_upload_with_bad_vin_stores_nothing(client: AsyncClient, container) -> None:
    response = await client.post(
        "/api/v1/inspect", data={"vin": "BADVIN", "shop_id": "shop-1"}, files=_files(3)
    )

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "VALIDATION.INVALID_INPUT"
    assert container.window.snapshot("upload").failures == 1
    assert _stored_files(container) == []


@pytest.mark.asyncio
async def test_v1_upload_rolls_back_saved_images_on_rejection(client: AsyncClient, container) -> None:
    files = _files(3)
    files[2] = ("files", ("manual.pdf", b"%PDF-1.4", "application/pdf"))

    response = await client.post("/api/v1/inspect", data={"vin": VIN, "shop_id": "shop-1"}, files=files)

    assert response.status_code == 400
    assert _stored_files(container) == []


# ============================================================
# Knowledge base & search
# ============================================================


@pytest.mark.asyncio
async def test_knowledge_base_lifecycle(client: AsyncClient) -> None:
    ingest = await client.post(
        f"{V2}/knowledge/shop-1",
        json={
            "documents": [
                {"chunkId": "bumper", "content": "Repairing dented plastic bumpers", "metadata": {"source": "manual"}},
                {"chunkId": "paint", "content": "Matching metallic paint"},
            ]
        },
    )
    assert ingest.status_code == 201
    assert ingest.json()["data"] == {
        "namespace": "shop-1-kb",
        "ingested": 2,
        "replaced": 0,
        "chunkIds": ["bumper", "paint"],
    }

    search = await client.post(
        f"{V2}/search",
        json={"shopId": "shop-1", "query": "dented plastic bumpers", "referenceType": "knowledgeBase", "limit": 1},
    )
    assert search.status_code == 200
    [hit] = search.json()["data"]
    assert hit["referenceId"] == "bumper"

    other_shop = await client.post(
        f"{V2}/search",
        json={"shopId": "shop-2", "query": "dented plastic bumpers", "referenceType": "knowledgeBase"},
    )
    assert other_shop.json()["data"] == []

    listing = await client.get(f"{V2}/knowledge/shop-1")
    assert {c["chunkId"] for c in listing.json()["data"]} == {"bumper", "paint"}

    deleted = await client.delete(f"{V2}/knowledge/shop-1/paint")
    assert deleted.status_code == 204

    missing = await client.delete(f"{V2}/knowledge/shop-1/paint")
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_search_rejects_unknown_reference_type(client: AsyncClient) -> None:
    response = await client.post(
        f"{V2}/search", json={"shopId": "shop-1", "query": "dent", "referenceType": "manual"}
    )

    assert response.status_code == 400


@pytest.mark.asyncio
async def test_similar_inspections_endpoint(client: AsyncClient, container) -> None:
    first = await container.inspections.submit(vin=VIN, media=[{"type": "image", "url": IMAGE}], shop_id="shop-1")
    second = await container.inspections.submit(vin=VIN, media=[{"type": "image", "url": IMAGE}], shop_id="shop-1")
    await container.inspections.process(first.id)
    await container.inspections.process(second.id)

    response = await client.get(f"{V2}/inspect/{first.id}/similar", params={"shopId": "shop-1"})

    assert response.status_code == 200
    assert [h["referenceId"] for h in response.json()["data"]] == [str(second.id)]


# ============================================================
# Health
# ============================================================


@pytest.mark.asyncio
async def test_ai_health_reports_failure_rates(client: AsyncClient) -> None:
    await client.post(f"{V2}/inspect", json=_body())

    response = await client.get(f"{V2}/ai/health")

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["status"] == "healthy"
    assert data["vision"]["model"] == "mock-vision"
    assert set(data["failureRates"]) == {"workflow", "upload", "ai", "search"}
    assert data["failureRates"]["workflow"]["total"] == 1
    assert data["failureRates"]["workflow"]["rate"] is None


@pytest.mark.asyncio
async def test_liveness_endpoint(client: AsyncClient) -> None:
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json()["data"]["status"] == "ok"
