import aiohttp
import pytest
import pytest_asyncio
from aiohttp.test_utils import TestClient, TestServer

from api.server import create_app
from models.records import Animal

USER = {"X-User-Id": "user-1"}
OTHER_USER = {"X-User-Id": "user-2"}


@pytest_asyncio.fixture
async def client(app_services):
    client = TestClient(TestServer(create_app(app_services)))
    await client.start_server()
    yield client
    await client.close()


def image_form(jpeg_bytes, count=1, **fields):
    data = aiohttp.FormData()
    for i in range(count):
        data.add_field("rgb", jpeg_bytes, filename=f"cow{i}.jpg", content_type="image/jpeg")
    for name, value in fields.items():
        data.add_field(name, value)
    return data


async def create_animal(app_services, user_id="user-1"):
    return await app_services.repositories.animals.save(Animal(user_id=user_id, name="Lola"))


@pytest.mark.asyncio
async def test_health_is_public(client):
    resp = await client.get("/health")
    assert resp.status == 200
    assert (await resp.json())["status"] == "ok"


@pytest.mark.asyncio
async def test_ready_reports_checks(client):
    resp = await client.get("/ready")
    body = await resp.json()
    assert resp.status == 200
    assert body["checks"]["image_store"] == "ok"
    assert body["checks"]["messaging"] == "configured"


@pytest.mark.asyncio
async def test_api_requires_known_user(client, jpeg_bytes):
    resp = await client.post("/api/scans", data=image_form(jpeg_bytes))
    assert resp.status == 401
    assert (await resp.json())["success"] is False

    resp = await client.get("/api/scans", headers={"X-User-Id": "nobody"})
    assert resp.status == 401


@pytest.mark.asyncio
async def test_unknown_route_is_json_404(client):
    resp = await client.get("/nope")
    body = await resp.json()
    assert resp.status == 404
    assert body["message"] == "Ruta no encontrada"


@pytest.mark.asyncio
async def test_create_scan_links_animal_and_alerts(client, app_services, jpeg_bytes, detectors, result_factory):
    animal = await create_animal(app_services)
    detectors["wound"].result = result_factory(("cut", 0.65))

    resp = await client.post(
        "/api/scans",
        data=image_form(jpeg_bytes, animalId=animal.id, scanType="lateral", lat="4.6", lng="-74.08"),
        headers=USER,
    )

    assert resp.status == 201
    scan = (await resp.json())["scan"]
    assert scan["verdict"]["classification"] == "critical"
    assert scan["status"] == "completed"
    assert scan["scan_type"] == "lateral"
    assert scan["metadata"]["location"] == {"lat": 4.6, "lng": -74.08}
    assert scan["images"]["rgb"].startswith("https://cdn.test/images/scans/rgb/")
    assert scan["images"]["thermal"].startswith("https://cdn.test/images/scans/thermal/")
    assert scan["alert"] == {"sent": True, "severity": "high"}
    assert detectors["wound"].calls == [scan["images"]["rgb"]]

    stored = await app_services.repositories.animals.get(animal.id)
    assert stored.scans == [scan["id"]]
    assert stored.consolidated_diagnosis.classification == "critical"
    assert len(app_services.sender.sent) == 1


@pytest.mark.asyncio
async def test_detector_outage_still_creates_scan(client, detectors, jpeg_bytes):
    for detector in detectors.values():
        detector.error = ConnectionError("offline")

    resp = await client.post("/api/scans", data=image_form(jpeg_bytes), headers=USER)

    assert resp.status == 201
    assert (await resp.json())["scan"]["verdict"]["classification"] == "healthy"


@pytest.mark.asyncio
async def test_scan_requires_rgb_image(client, jpeg_bytes):
    data = aiohttp.FormData()
    data.add_field("thermal", jpeg_bytes, filename="t.jpg", content_type="image/jpeg")

    resp = await client.post("/api/scans", data=data, headers=USER)
    assert resp.status == 400


@pytest.mark.asyncio
async def test_scan_rejects_non_image_upload(client):
    data = aiohttp.FormData()
    data.add_field("rgb", b"hello", filename="notes.txt", content_type="text/plain")

    resp = await client.post("/api/scans", data=data, headers=USER)
    assert resp.status == 400


@pytest.mark.asyncio
async def test_scan_rejects_partial_location(client, jpeg_bytes):
    resp = await client.post("/api/scans", data=image_form(jpeg_bytes, lat="4.6"), headers=USER)
    assert resp.status == 400


@pytest.mark.asyncio
async def test_foreign_animal_is_not_linked(client, app_services, jpeg_bytes):
    animal = await create_animal(app_services, user_id="user-2")

    resp = await client.post("/api/scans", data=image_form(jpeg_bytes, animalId=animal.id), headers=USER)

    assert resp.status == 201
    assert (await resp.json())["scan"]["animal_id"] is None
    assert (await app_services.repositories.animals.get(animal.id)).scans == []


@pytest.mark.asyncio
async def test_batch_reports_partial_failures(client, app_services, jpeg_bytes):
    animal = await create_animal(app_services)
    data = image_form(jpeg_bytes, count=2, animalId=animal.id)
    data.add_field("rgb", b"corrupt", filename="bad.jpg", content_type="image/jpeg")

    resp = await client.post("/api/scans/batch", data=data, headers=USER)
    body = await resp.json()

    assert resp.status == 201
    assert body["count"] == 2 and body["total"] == 3
    assert [e["index"] for e in body["errors"]] == [2]
    assert sorted(s["metadata"]["batch_index"] for s in body["scans"]) == [0, 1]

    stored = await app_services.repositories.animals.get(animal.id)
    assert sorted(stored.scans) == sorted(s["id"] for s in body["scans"])
    assert stored.version == 1


@pytest.mark.asyncio
async def test_batch_sends_one_alert_per_problematic_scan(client, app_services, jpeg_bytes, detectors,
                                                          result_factory):
    detectors["disease_b"].result = result_factory(("mange", 0.5))

    resp = await client.post("/api/scans/batch", data=image_form(jpeg_bytes, count=3), headers=USER)

    assert resp.status == 201
    bodies = sorted(body for _, body in app_services.sender.sent)
    assert bodies[0].startswith("Escaneo batch: imagen 1 - ")
    assert len(bodies) == 3


@pytest.mark.asyncio
async def test_batch_over_limit_is_rejected(client, jpeg_bytes):
    resp = await client.post("/api/scans/batch", data=image_form(jpeg_bytes, count=21), headers=USER)
    assert resp.status == 400


@pytest.mark.asyncio
async def test_list_and_get_scans_are_scoped_to_owner(client, jpeg_bytes):
    created = await (await client.post("/api/scans", data=image_form(jpeg_bytes), headers=USER)).json()
    scan_id = created["scan"]["id"]

    listing = await (await client.get("/api/scans", headers=USER)).json()
    assert [s["id"] for s in listing["scans"]] == [scan_id]

    other = await (await client.get("/api/scans", headers=OTHER_USER)).json()
    assert other["count"] == 0

    resp = await client.get(f"/api/scans/{scan_id}", headers=OTHER_USER)
    assert resp.status == 403
    resp = await client.get("/api/scans/missing", headers=USER)
    assert resp.status == 404


@pytest.mark.asyncio
async def test_animal_lifecycle(client, jpeg_bytes, detectors, result_factory):
    resp = await client.post("/api/animals", json={"name": "Lola", "tag": "A-12", "age": 3}, headers=USER)
    assert resp.status == 201
    animal_id = (await resp.json())["animal"]["id"]

    detectors["disease_a"].result = result_factory(("lumpy", 0.85))
    scan = (await (await client.post("/api/scans", data=image_form(jpeg_bytes), headers=USER)).json())["scan"]

    resp = await client.post(f"/api/animals/{animal_id}/scans/{scan['id']}", headers=USER)
    animal = (await resp.json())["animal"]
    assert animal["scans"] == [scan["id"]]
    assert animal["consolidated_diagnosis"]["classification"] == "critical"
    assert animal["consolidated_diagnosis"]["diseases"][0]["name"] == "lumpy"

    resp = await client.post(f"/api/animals/{animal_id}/consolidate", headers=USER)
    assert (await resp.json())["animal"]["version"] == 2

    detail = await (await client.get(f"/api/animals/{animal_id}", headers=USER)).json()
    assert [s["id"] for s in detail["scans"]] == [scan["id"]]
    assert detail["scans"][0]["animal_id"] == animal_id

    resp = await client.get(f"/api/animals/{animal_id}", headers=OTHER_USER)
    assert resp.status == 403


@pytest.mark.asyncio
async def test_invalid_animal_body_is_rejected(client):
    resp = await client.post("/api/animals", json={"age": -1}, headers=USER)
    assert resp.status == 400

    resp = await client.post("/api/animals", data="not json", headers=USER)
    assert resp.status == 400


@pytest.mark.asyncio
async def test_metrics_count_created_scans(client, jpeg_bytes):
    await client.post("/api/scans", data=image_form(jpeg_bytes), headers=USER)
    body = await (await client.get("/metrics")).json()
    assert body["counters"]["scans.created"] == 1
