"""HTTP API tests against an application with a mocked mirror network."""
from collections.abc import Iterator

import httpx
import pytest
from fastapi.testclient import TestClient

from mediathek.config import Settings
from mediathek.main import create_app
from tests.factories import compressed_catalog, mirror_list_document, record

MIRROR = "http://mirror.example/Filmliste-akt.xz"

CATALOG = compressed_catalog([
    record(channel="ARD", topic="Tagesschau", title="Tagesschau 20:00 Uhr", duration="00:15:00",
           url="http://media.example/ts.mp4", url_small="21|ts_small.mp4", url_large="_hd"),
    record(channel="", topic="", title="Tagesschau 12:00 Uhr", clock="12:00:00"),
    record(channel="ARD", topic="Sportschau", title="Bundesliga", duration="01:30:00"),
    record(channel="ZDF", topic="heute", title="heute journal", day="16.03.2025", clock="21:45:00",
           url="http://media.example/hj.mp4"),
    record(channel="ZDF", topic="Terra X", title="Pyramiden", url="", url_small="", url_large=""),
])


@pytest.fixture
def api(config: Settings) -> Iterator[TestClient]:
    def handler(request: httpx.Request) -> httpx.Response:
        if str(request.url) == config.mirror_list_url:
            return httpx.Response(200, content=mirror_list_document([MIRROR]))
        if str(request.url) == MIRROR:
            return httpx.Response(200, content=CATALOG)
        return httpx.Response(404)

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    app = create_app(config, client=client, start_scheduler=False)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def synced(api: TestClient) -> TestClient:
    response = api.post("/sync")
    assert response.status_code == 200
    return api


def test_health_before_any_sync(api: TestClient) -> None:
    response = api.get("/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "ok"
    assert body["shows"] == 0
    assert body["sync_phase"] == "idle"
    assert body["scheduler_running"] is False


def test_sync_imports_the_catalog(api: TestClient) -> None:
    response = api.post("/sync")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "completed"
    assert body["mirror"] == MIRROR
    assert body["shows"] == 5

    status = api.get("/sync/status").json()
    assert status["syncing"] is False
    assert status["mirror_list"]["kind"] == "completed"
    assert status["catalog"]["kind"] == "completed"
    assert status["catalog"]["shows"] == 5

    again = api.post("/sync").json()
    assert again["status"] == "idle"


def test_channels_and_topics(synced: TestClient) -> None:
    assert synced.get("/channels").json() == ["", "ARD", "ZDF"]
    assert synced.get("/topics", params={"channel": "ARD"}).json() == ["", "Sportschau", "Tagesschau"]
    assert synced.get("/topics").json() == ["", "Sportschau", "Tagesschau", "Terra X", "heute"]


def test_shows_are_paged_filtered_and_sorted(synced: TestClient) -> None:
    page = synced.get("/shows", params={"sort": "title", "limit": 2}).json()

    assert page["total"] == 5
    assert page["offset"] == 0
    assert [row["title"] for row in page["rows"]] == ["Bundesliga", "Pyramiden"]
    assert page["rows"][0]["row"] == 0
    assert page["rows"][0]["duration"] == "01:30:00"
    assert page["rows"][0]["date"] == "17.03.25"

    page = synced.get("/shows", params={"sort": "title", "offset": 2, "limit": 10}).json()
    assert [row["title"] for row in page["rows"]] == [
        "Tagesschau 12:00 Uhr", "Tagesschau 20:00 Uhr", "heute journal",
    ]

    page = synced.get("/shows", params={"channel": "ARD", "topic": "Tagesschau", "sort": "time", "order": "desc"}).json()
    assert [row["time"] for row in page["rows"]] == ["20:00", "12:00"]
    assert all(row["channel"] == "ARD" for row in page["rows"])

    page = synced.get("/shows", params={"title": "journal"}).json()
    assert page["total"] == 1
    assert page["rows"][0]["channel"] == "ZDF"


def test_invalid_paging_is_rejected(synced: TestClient) -> None:
    assert synced.get("/shows", params={"offset": -1}).status_code == 422
    assert synced.get("/shows", params={"sort": "size"}).status_code == 422


def test_show_details_and_playback_urls(synced: TestClient) -> None:
    (row,) = synced.get("/shows", params={"title": "20:00"}).json()["rows"]

    show = synced.get(f"/shows/{row['id']}").json()
    assert show["title"] == "Tagesschau 20:00 Uhr"
    assert show["duration_seconds"] == 900
    assert show["date"] == "2025-03-17"

    def url(quality: str) -> str:
        return synced.get(f"/shows/{row['id']}/url", params={"quality": quality}).json()["url"]

    assert url("default") == "http://media.example/ts.mp4"
    assert url("small") == "http://media.example/ts_small.mp4"
    assert url("large") == "http://media.example/ts.mp4_hd"


def test_show_without_urls_has_no_playback_url(synced: TestClient) -> None:
    (row,) = synced.get("/shows", params={"title": "Pyramiden"}).json()["rows"]

    response = synced.get(f"/shows/{row['id']}/url")

    assert response.status_code == 404


def test_identifiers_from_a_previous_snapshot_are_gone(synced: TestClient) -> None:
    old_ids = [row["id"] for row in synced.get("/shows").json()["rows"]]

    assert synced.post("/sync/catalog").status_code == 200

    for identifier in old_ids:
        assert synced.get(f"/shows/{identifier}").status_code == 404
    new_ids = [row["id"] for row in synced.get("/shows").json()["rows"]]
    assert len(new_ids) == 5
    assert not set(old_ids) & set(new_ids)


def test_failed_sync_is_reported(config: Settings) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=b"<Mediathek></Mediathek>")

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    with TestClient(create_app(config, client=client, start_scheduler=False)) as api:
        response = api.post("/sync")

        assert response.status_code == 502
        detail = response.json()["detail"]
        assert detail["code"] == "SYNC_FAILED"
        assert detail["message"] == "Received an empty mirror list."
        assert detail["context"] == {"stage": "mirror_list"}
        assert api.get("/sync/status").json()["mirror_list"]["kind"] == "failed"
