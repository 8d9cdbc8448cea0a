import json

import pytest
from fastapi.testclient import TestClient

from devevent.database import ConnectionCache
from devevent.main import create_app
from devevent.services.storage import LocalEventImageStorage

PNG = b"\x89PNG\r\n\x1a\nfake-image"


@pytest.fixture
def client(tmp_path):
    cache = ConnectionCache(f"sqlite+aiosqlite:///{tmp_path / 'api.db'}", env={})
    storage = LocalEventImageStorage(base_path=str(tmp_path / "images"), base_url="/media/events")
    app = create_app(cache=cache, image_storage=storage)
    with TestClient(app) as test_client:
        yield test_client


def _form(**overrides):
    data = {
        "title": "React Conf",
        "description": "The official React conference.",
        "overview": "Two days of talks.",
        "venue": "Convention Center",
        "location": "Las Vegas, NV",
        "date": "March 3, 2024",
        "time": " 9:00 AM ",
        "mode": "Hybrid",
        "audience": "Developers",
        "agenda": json.dumps(["Keynote", "Workshops"]),
        "organizer": "Meta",
        "tags": json.dumps(["react", "frontend"]),
    }
    data.update(overrides)
    return data


def _image():
    return {"image": ("cover.png", PNG, "image/png")}


def test_create_and_fetch_event(client):
    response = client.post("/api/events", data=_form(), files=_image())
    assert response.status_code == 201, response.text
    event = response.json()["event"]
    assert event["slug"] == "react-conf"
    assert event["date"] == "2024-03-03"
    assert event["time"] == "9:00 AM"
    assert event["mode"] == "hybrid"
    assert event["agenda"] == ["Keynote", "Workshops"]
    assert event["image"].startswith("/media/events/")

    image = client.get(event["image"])
    assert image.status_code == 200
    assert image.content == PNG

    fetched = client.get("/api/events/React-Conf")
    assert fetched.status_code == 200
    assert fetched.json()["event"]["id"] == event["id"]


def test_duplicate_titles_get_numbered_slugs(client):
    slugs = [
        client.post("/api/events", data=_form(), files=_image()).json()["event"]["slug"]
        for _ in range(3)
    ]
    assert slugs == ["react-conf", "react-conf-2", "react-conf-3"]

    listed = client.get("/api/events")
    assert listed.status_code == 200
    assert [e["slug"] for e in listed.json()["events"]] == ["react-conf-3", "react-conf-2", "react-conf"]


def test_invalid_agenda_json_is_a_bad_request(client):
    response = client.post("/api/events", data=_form(agenda="not json"), files=_image())
    assert response.status_code == 400
    assert "agenda" in response.json()["detail"]


def test_missing_image_is_a_bad_request(client):
    response = client.post("/api/events", data=_form())
    assert response.status_code == 400
    assert response.json()["detail"] == "Image file is required"


def test_missing_field_is_rejected(client):
    response = client.post("/api/events", data=_form(venue=""), files=_image())
    assert response.status_code == 422


def test_unknown_mode_is_rejected(client):
    response = client.post("/api/events", data=_form(mode="in-person"), files=_image())
    assert response.status_code == 422


def test_unknown_slug_is_not_found(client):
    response = client.get("/api/events/does-not-exist")
    assert response.status_code == 404
    assert response.json()["message"] == "Event not found"


def test_patch_title_rederives_slug(client):
    client.post("/api/events", data=_form(), files=_image())
    response = client.patch("/api/events/react-conf", json={"title": "Vue Conf", "date": "2024/05/01"})
    assert response.status_code == 200, response.text
    event = response.json()["event"]
    assert event["slug"] == "vue-conf"
    assert event["date"] == "2024-05-01"

    assert client.get("/api/events/react-conf").status_code == 404
    assert client.get("/api/events/vue-conf").status_code == 200


def test_similar_events(client):
    client.post("/api/events", data=_form(), files=_image())
    client.post("/api/events", data=_form(title="Next Conf", tags=json.dumps(["React"])), files=_image())
    client.post("/api/events", data=_form(title="Rust Conf", tags=json.dumps(["rust"])), files=_image())

    response = client.get("/api/events/react-conf/similar")
    assert response.status_code == 200
    assert [e["slug"] for e in response.json()] == ["next-conf"]


def test_booking_flow(client):
    event = client.post("/api/events", data=_form(), files=_image()).json()["event"]

    response = client.post("/api/bookings", json={"event_id": event["id"], "email": "  Alice@Example.com "})
    assert response.status_code == 201, response.text
    assert response.json()["booking"]["email"] == "alice@example.com"

    missing = client.post("/api/bookings", json={"event_id": event["id"] + 100, "email": "bob@example.com"})
    assert missing.status_code == 404


def test_health_reports_database_state(client):
    response = client.get("/health")
    assert response.json() == {"ok": True, "database": True}


def test_long_image_filename_still_creates_event(client):
    files = {"image": ("c" * 400 + ".png", PNG, "image/png")}
    response = client.post("/api/events", data=_form(), files=files)
    assert response.status_code == 201, response.text
    assert response.json()["event"]["image"].endswith(".png")
