"""HTTP endpoint tests."""

import base64

from fastapi.testclient import TestClient

from copypasta.store import ItemStore
from copypasta.services.items import ItemService, get_service
from copypasta.main import app


def _create_note(client, content="hello world", **extra):
    resp = client.post("/notes", json={"content": content, **extra})
    assert resp.status_code == 201
    return resp.json()


def test_ping(client):
    response = client.head("/ping")
    assert response.status_code == 200


def test_create_and_list_note(client):
    created = _create_note(client, "print('hi')\n", language="python")

    assert created["type"] == "note"
    assert created["language"] == "python"
    assert created["url"] == f"/download/{created['id']}"

    response = client.get("/items")
    assert response.status_code == 200
    items = response.json()
    assert [i["id"] for i in items] == [created["id"]]
    assert items[0]["content"] == "print('hi')\n"


def test_get_single_item(client):
    created = _create_note(client)

    response = client.get(f"/items/{created['id']}")
    assert response.status_code == 200
    assert response.json()["content"] == "hello world"


def test_blank_note_returns_validation_error(client):
    response = client.post("/notes", json={"content": "  "})

    assert response.status_code == 400
    assert response.json() == {"kind": "validation-error", "detail": "Note content is required"}


def test_missing_field_is_a_validation_error(client):
    response = client.post("/notes", json={"language": "python"})

    assert response.status_code == 400
    body = response.json()
    assert body["kind"] == "validation-error"
    assert "content" in body["detail"]


def test_expiry_before_creation_is_rejected(client):
    response = client.post("/notes", json={
        "content": "x",
        "created_at": "2026-01-10T00:00:00Z",
        "expires_at": "2026-01-01T00:00:00Z",
    })

    assert response.status_code == 400
    body = response.json()
    assert body["kind"] == "validation-error"
    assert "expires_at must be later than created_at" in body["detail"]
    assert client.get("/items").json() == []


def test_edit_item(client):
    created = _create_note(client, "hello world")

    response = client.put(f"/items/{created['id']}", json={"content": "goodbye"})
    assert response.status_code == 200
    assert response.json() == {"success": True}

    assert client.get("/items").json()[0]["content"] == "goodbye"


def test_edit_missing_item(client):
    response = client.put("/items/nope", json={"content": "x"})

    assert response.status_code == 404
    assert response.json()["kind"] == "not-found"


def test_delete_item_twice(client):
    created = _create_note(client)

    first = client.delete(f"/items/{created['id']}")
    assert first.status_code == 200
    assert first.json() == {"success": True}
    assert client.get("/items").json() == []

    second = client.delete(f"/items/{created['id']}")
    assert second.status_code == 404
    assert second.json()["kind"] == "not-found"


def test_delete_all(client):
    _create_note(client, "a")
    _create_note(client, "b")

    response = client.delete("/items")

    assert response.status_code == 200
    assert response.json() == {"success": True, "removed": 2, "failed": 0}
    assert client.get("/items").json() == []


def test_reorder(client, clock):
    ids = []
    for text in ("one", "two", "three"):
        ids.append(_create_note(client, text)["id"])
        clock.advance(seconds=1)

    wanted = [ids[2], ids[0], ids[1]]
    response = client.put("/items/order", json={"ids": wanted})
    assert response.status_code == 200

    items = sorted(client.get("/items").json(), key=lambda i: i["order"])
    assert [i["id"] for i in items] == wanted


def test_clean_expired(client, clock):
    _create_note(client, "A")
    _create_note(client, "B")
    clock.advance(days=15)

    response = client.post("/items/clean-expired")

    assert response.status_code == 200
    assert response.json() == {"removed": 2, "failed": 0}
    assert client.get("/items").json() == []


def test_create_file_from_json(client):
    response = client.post("/files", json={
        "content": base64.b64encode(b"\x00\x01\x02").decode("ascii"),
        "file_name": "tiny.bin",
        "file_type": "application/octet-stream",
        "is_text": False,
    })

    assert response.status_code == 201
    body = response.json()
    assert body["type"] == "file"
    assert body["content"] is None
    assert body["original_size"] == 3


def test_oversized_file_is_rejected(client):
    response = client.post("/files", json={
        "content": "aGk=",
        "file_name": "huge.iso",
        "is_text": False,
        "original_size": 50 * 1024 * 1024 + 1,
    })

    assert response.status_code == 413
    assert response.json()["kind"] == "file-too-large"
    assert client.get("/items").json() == []


def test_multipart_upload(client):
    response = client.post(
        "/files/upload",
        files=[("files", ("hello.py", b"import os\nprint(os.getcwd())\n", "text/x-python"))],
    )

    assert response.status_code == 201
    [body] = response.json()
    assert body["file_name"] == "hello.py"
    assert body["is_text"] is True
    assert body["language"] == "python"
    assert body["content"].startswith("import os")


def test_multipart_upload_files_with_note(client):
    response = client.post(
        "/files/upload",
        files=[
            ("files", ("a.txt", b"first", "text/plain")),
            ("files", ("b.bin", b"\x00\xff", "application/octet-stream")),
        ],
        data={"content": "see attached", "language": "text"},
    )

    assert response.status_code == 201
    body = response.json()
    assert [i["type"] for i in body] == ["file", "file", "note"]
    assert [i["file_name"] for i in body[:2]] == ["a.txt", "b.bin"]
    assert body[2]["content"] == "see attached"
    assert len(client.get("/items").json()) == 3


def test_multipart_upload_note_only(client):
    response = client.post("/files/upload", data={"content": "just text"})

    assert response.status_code == 201
    assert [i["type"] for i in response.json()] == ["note"]


def test_multipart_upload_without_parts(client):
    response = client.post("/files/upload", data={"content": ""})

    assert response.status_code == 400
    assert response.json()["kind"] == "validation-error"


def test_multipart_upload_over_limit(tmp_path, clock):
    small = ItemService(ItemStore(str(tmp_path / "small"), max_size_mb=1, clock=clock))
    app.dependency_overrides[get_service] = lambda: small
    try:
        response = TestClient(app).post(
            "/files/upload",
            files=[
                ("files", ("ok.txt", b"fine", "text/plain")),
                ("files", ("big.bin", b"x" * (1024 * 1024 + 1), "application/octet-stream")),
            ],
        )
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 413
    assert response.json()["kind"] == "file-too-large"
    assert small.store.list() == []


def test_stats(client):
    _create_note(client, "12345")

    response = client.get("/items/stats")

    assert response.status_code == 200
    body = response.json()
    assert body["notes"] == 1
    assert body["files"] == 0
    assert body["total_size"] == 5
    assert body["disk_free"] > 0
