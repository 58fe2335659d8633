import csv
import io

import pytest
from fastapi.testclient import TestClient

from ride_router.config import settings
from ride_router.data.roster_repository import RosterColumns
from ride_router.errors import ValidationFailure
from ride_router.main import create_app
from ride_router.persistence import sessions as session_store
from ride_router.persistence.sessions import SessionStore
from ride_router.services.geocoding.nominatim_client import GeocodeResult
from ride_router.services.routing.session import RouteSession

COLUMNS = RosterColumns()
STREETS = {"1 Origin Way": 0.0, "2 B St": 1.0, "3 C St": 2.0, "4 D St": 3.0, "6 F St": 0.5}


class DummyGeocoder:
    async def resolve(self, address):
        street = address.split(",")[0]
        if street not in STREETS:
            raise ValidationFailure("Address could not be found", address=address)
        return GeocodeResult(formatted_address=address, lat=39.0, lng=STREETS[street])


class LineGateway:
    async def batch_distances(self, origins, destinations):
        return [[abs(o[1] - d[1]) * 1000 for d in destinations] for o in origins]


def _roster_csv(streets: list[str]) -> bytes:
    buffer = io.StringIO()
    headers = [COLUMNS.first_name, COLUMNS.street, COLUMNS.city, COLUMNS.state, COLUMNS.zip, COLUMNS.category]
    writer = csv.DictWriter(buffer, fieldnames=headers)
    writer.writeheader()
    for index, street in enumerate(streets):
        writer.writerow(
            {
                COLUMNS.first_name: f"Rider {index}",
                COLUMNS.street: street,
                COLUMNS.city: "Springfield",
                COLUMNS.state: "IL",
                COLUMNS.zip: "62701",
                COLUMNS.category: "Sunday" if index % 2 else "Wednesday",
            }
        )
    return buffer.getvalue().encode("utf-8")


@pytest.fixture
def api_client(monkeypatch: pytest.MonkeyPatch) -> TestClient:
    store = SessionStore(
        factory=lambda: RouteSession(DummyGeocoder(), LineGateway(), backoff_seconds=0)
    )
    monkeypatch.setattr(session_store, "store", store)
    monkeypatch.setattr(settings, "osrm_base_url", None)
    return TestClient(create_app())


def _create(client: TestClient, streets: list[str]) -> dict:
    response = client.post(
        "/api/sessions",
        files={"file": ("roster.csv", _roster_csv(streets), "text/csv")},
    )
    assert response.status_code == 201, response.text
    return response.json()


def test_health(api_client: TestClient) -> None:
    response = api_client.get("/api/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_create_session_builds_route(api_client: TestClient) -> None:
    body = _create(api_client, ["1 Origin Way", "2 B St", "3 C St", "4 D St"])

    assert body["status"] == "ready"
    assert body["stop_count"] == 3
    assert len(body["stops"]) == 5
    assert body["stops"][0]["is_origin"] and body["stops"][-1]["is_origin"]
    assert body["rider_total"] == 3
    assert body["categories"] == ["Sunday", "Wednesday"]

    fetched = api_client.get(f"/api/sessions/{body['session_id']}")
    assert fetched.status_code == 200
    assert fetched.json()["stops"] == body["stops"]


def test_route_edits(api_client: TestClient) -> None:
    session_id = _create(api_client, ["1 Origin Way", "2 B St", "3 C St", "4 D St"])["session_id"]
    base = f"/api/sessions/{session_id}"

    assert api_client.delete(f"{base}/stops/0").status_code == 400
    assert api_client.delete(f"{base}/stops/4").status_code == 400

    moved = api_client.post(f"{base}/stops/move", json={"from_index": 1, "to_index": 2})
    assert moved.status_code == 200
    assert [stop["name"] for stop in moved.json()["stops"]][1:3] == ["Rider 2", "Rider 1"]

    riders = api_client.patch(f"{base}/stops/1/riders", json={"delta": 2})
    assert riders.json()["stops"][1]["rider_count"] == 3
    assert riders.json()["rider_total"] == 5

    deleted = api_client.delete(f"{base}/stops/1")
    assert deleted.status_code == 200
    assert len(deleted.json()["stops"]) == 4
    assert deleted.json()["rider_total"] == 2

    added = api_client.post(
        f"{base}/stops",
        json={"name": "Fay", "street": "6 F St", "city": "Springfield", "state": "IL", "zip": "62701"},
    )
    assert added.status_code == 200
    assert added.json()["stops"][-2]["name"] == "Fay"

    missing = api_client.post(
        f"{base}/stops",
        json={"name": "Nobody", "street": "404 Missing Rd", "city": "Springfield", "state": "IL", "zip": "62701"},
    )
    assert missing.status_code == 400


def test_filter_reoptimize_and_exports(api_client: TestClient) -> None:
    session_id = _create(api_client, ["1 Origin Way", "2 B St", "3 C St", "4 D St"])["session_id"]
    base = f"/api/sessions/{session_id}"

    filtered = api_client.post(f"{base}/filter", json={"category": "sunday"})
    assert filtered.status_code == 200
    assert filtered.json()["category_filter"] == "sunday"
    assert [stop["name"] for stop in filtered.json()["stops"]] == ["Rider 0", "Rider 1", "Rider 3", "Rider 0"]

    reoptimized = api_client.post(f"{base}/reoptimize")
    assert reoptimized.status_code == 200
    assert reoptimized.json()["total_cost"] == 6000

    directions = api_client.get(f"{base}/directions")
    assert directions.status_code == 200
    assert directions.json()["source"] == "straight-line"
    assert len(directions.json()["rendered_stop_ids"]) == 4

    link = api_client.get(f"{base}/deep-link")
    assert link.status_code == 200
    assert link.json()["url"].startswith("https://www.google.com/maps/dir/?api=1")

    exported = api_client.get(f"{base}/export.csv")
    assert exported.status_code == 200
    assert exported.headers["content-type"].startswith("text/csv")
    lines = exported.text.strip().splitlines()
    assert lines[0].startswith("sequence,stop_id,name")
    assert len(lines) == 5


def test_rejected_addresses_need_decision(api_client: TestClient) -> None:
    body = _create(api_client, ["1 Origin Way", "2 B St", "404 Missing Rd"])
    base = f"/api/sessions/{body['session_id']}"

    assert body["status"] == "awaiting_decision"
    assert [stop["full_address"] for stop in body["rejected"]] == ["404 Missing Rd, Springfield, IL 62701"]
    assert api_client.post(f"{base}/reoptimize").status_code == 409

    decided = api_client.post(f"{base}/decision", json={"proceed": True})
    assert decided.status_code == 200
    assert decided.json()["status"] == "ready"
    assert len(decided.json()["stops"]) == 3

    assert api_client.post(f"{base}/decision", json={"proceed": True}).status_code == 409


def test_invalid_uploads_and_unknown_sessions(api_client: TestClient) -> None:
    wrong_type = api_client.post("/api/sessions", files={"file": ("roster.txt", b"a,b\n1,2\n", "text/plain")})
    assert wrong_type.status_code == 415

    bad_schema = api_client.post("/api/sessions", files={"file": ("roster.csv", b"a,b\n1,2\n", "text/csv")})
    assert bad_schema.status_code == 400
    assert len(session_store.store) == 0

    assert api_client.get("/api/sessions/missing").status_code == 404
    assert api_client.delete("/api/sessions/missing").status_code == 404


def test_delete_session(api_client: TestClient) -> None:
    session_id = _create(api_client, ["1 Origin Way", "2 B St"])["session_id"]

    assert api_client.delete(f"/api/sessions/{session_id}").status_code == 200
    assert api_client.get(f"/api/sessions/{session_id}").status_code == 404


def test_cp1252_roster_upload(api_client: TestClient) -> None:
    content = _roster_csv(["1 Origin Way", "2 B St"]).decode("utf-8").replace("Rider 1", "José").encode("cp1252")

    response = api_client.post("/api/sessions", files={"file": ("roster.csv", content, "text/csv")})

    assert response.status_code == 201, response.text
    assert [stop["name"] for stop in response.json()["stops"]] == ["Rider 0", "José", "Rider 0"]


def test_rejected_roster_replacement_keeps_route(api_client: TestClient) -> None:
    body = _create(api_client, ["1 Origin Way", "2 B St", "3 C St"])
    base = f"/api/sessions/{body['session_id']}"

    response = api_client.post(f"{base}/roster", files={"file": ("roster.csv", b"a,b\n1,2\n", "text/csv")})

    assert response.status_code == 400
    current = api_client.get(base).json()
    assert current["status"] == "ready"
    assert current["stops"] == body["stops"]
