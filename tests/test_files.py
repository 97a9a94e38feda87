"""
Tests for the upload / store / serve lifecycle of files.
"""

import hashlib

import pytest
from sqlalchemy.exc import SQLAlchemyError

from keeper.core.errors import KeeperError, NotFound, StorageFailure
from keeper.models.analytics import AnalyticsEvent, EventType
from keeper.models.file import FileMeta
from keeper.routers.deps import get_store
from keeper.services.files import FileService, Upload
from keeper.storage import LocalObjectStore


def upload(client, user_headers, name="a.txt", data=b"0123456789", **form):
    return client.post(
        "/api/files/upload",
        files={"file": (name, data, "text/plain")},
        data=form,
        headers=user_headers,
    )


class FlakyStore(LocalObjectStore):
    """Fails puts for chosen original names, and deletes when asked to."""

    def __init__(self, root, fail_names=(), fail_delete=False):
        super().__init__(root)
        self.fail_names = set(fail_names)
        self.fail_delete = fail_delete

    def put(self, key, data, content_type, metadata=None):
        if (metadata or {}).get("x-original-name") in self.fail_names:
            raise StorageFailure("Failed to upload file")
        return super().put(key, data, content_type, metadata)

    def delete(self, key):
        if self.fail_delete:
            raise StorageFailure("Failed to delete file")
        super().delete(key)


# ========== Upload ==========

def test_upload_stores_bytes_and_metadata(client, alice, headers, store, db_session):
    response = upload(client, headers(alice), description="notes", tags="a, b", isPublic="false")

    assert response.status_code == 201
    file = response.json()["data"]["file"]
    digest = hashlib.sha256(b"0123456789").hexdigest()
    assert file["size"] == "10"
    assert file["contentHash"] == digest
    assert file["storageKey"] == f"uploads/{alice.id}/{digest}_a.txt"
    assert file["extension"] == "txt"
    assert file["mimeType"] == "text/plain"
    assert file["tags"] == ["a", "b"]
    assert file["isPublic"] is False
    assert file["userId"] == alice.id

    info = store.stat(file["storageKey"])
    assert info.size == 10
    assert info.content_hash == digest
    assert info.original_name == "a.txt"
    assert db_session.query(AnalyticsEvent).filter_by(type=EventType.FILE_UPLOAD).count() == 1


def test_upload_accepts_json_tags(client, alice, headers):
    response = upload(client, headers(alice), tags='["q3", "finance"]')

    assert response.json()["data"]["file"]["tags"] == ["q3", "finance"]


def test_upload_round_trip_hash_integrity(client, alice, headers):
    payload = bytes(range(256)) * 4
    created = upload(client, headers(alice), name="blob.csv", data=payload[:1000]).json()["data"]["file"]

    response = client.get(f"/api/files/{created['id']}/download", headers=headers(alice))

    assert response.status_code == 200
    assert hashlib.sha256(response.content).hexdigest() == created["contentHash"]
    assert response.headers["content-length"] == "1000"
    assert response.headers["content-disposition"].startswith('attachment; filename="blob.csv"')


def test_upload_into_foreign_folder_is_not_found(client, alice, bob, headers, store):
    folder = client.post("/api/folders", json={"name": "Bob"}, headers=headers(bob)).json()["data"]["folder"]

    response = upload(client, headers(alice), folderId=folder["id"])

    assert response.status_code == 404
    assert store.usage() == (0, 0)


def test_upload_rejects_disallowed_type(client, alice, headers, store):
    response = upload(client, headers(alice), name="run.exe")

    assert response.status_code == 400
    body = response.json()
    assert body["message"] == "Validation failed"
    assert body["data"] == [{"field": "file", "message": "File type .exe is not allowed for run.exe"}]
    assert store.usage() == (0, 0)


def test_upload_rejects_oversized_file(client, alice, headers):
    response = upload(client, headers(alice), data=b"x" * 2048)

    assert response.status_code == 400
    assert "exceeds maximum size" in response.json()["data"][0]["message"]


def test_upload_requires_auth(client):
    response = client.post("/api/files/upload", files={"file": ("a.txt", b"x", "text/plain")})

    assert response.status_code == 401


def test_upload_storage_failure_creates_no_row(app, client, alice, headers, tmp_path, db_session):
    app.dependency_overrides[get_store] = lambda: FlakyStore(tmp_path / "flaky", fail_names={"a.txt"})

    response = upload(client, headers(alice))

    assert response.status_code == 500
    assert response.json()["message"] == "Failed to upload file"
    assert db_session.query(FileMeta).count() == 0


def test_metadata_failure_removes_fresh_object(alice, db_session, store, monkeypatch):
    service = FileService(db_session, alice, store)

    def broken_commit():
        raise SQLAlchemyError("database is gone")

    monkeypatch.setattr(db_session, "commit", broken_commit)

    with pytest.raises(KeeperError) as exc:
        service.upload_file(Upload(b"payload", "a.txt", "text/plain"))

    assert exc.value.message == "Failed to save file metadata"
    assert store.usage() == (0, 0)


def test_metadata_failure_keeps_object_when_database_is_down(alice, db_session, store, monkeypatch):
    service = FileService(db_session, alice, store)

    def broken(*args, **kwargs):
        raise SQLAlchemyError("database is gone")

    monkeypatch.setattr(db_session, "commit", broken)
    monkeypatch.setattr(service, "_key_shared", broken)

    with pytest.raises(KeeperError) as exc:
        service.upload_file(Upload(b"payload", "a.txt", "text/plain"))

    assert exc.value.message == "Failed to save file metadata"
    assert store.usage() == (7, 1)


# ========== Batch upload ==========

def test_batch_upload_partial_success(app, client, alice, headers, tmp_path, db_session):
    app.dependency_overrides[get_store] = lambda: FlakyStore(tmp_path / "flaky", fail_names={"2.txt"})

    response = client.post(
        "/api/files/upload-multiple",
        files=[
            ("files", ("1.txt", b"one", "text/plain")),
            ("files", ("2.txt", b"two", "text/plain")),
            ("files", ("3.txt", b"three", "text/plain")),
        ],
        headers=headers(alice),
    )

    assert response.status_code == 201
    body = response.json()
    assert body["message"] == "2 files uploaded successfully"
    assert [f["name"] for f in body["data"]["files"]] == ["1.txt", "3.txt"]
    assert body["data"]["failed"] == [{"name": "2.txt", "message": "Failed to upload file"}]
    assert sorted(f.name for f in db_session.query(FileMeta).all()) == ["1.txt", "3.txt"]


def test_batch_upload_rejects_too_many_files(client, alice, headers):
    response = client.post(
        "/api/files/upload-multiple",
        files=[("files", (f"{i}.txt", b"x", "text/plain")) for i in range(4)],
        headers=headers(alice),
    )

    assert response.status_code == 400
    assert response.json()["data"][0]["message"] == "Maximum 3 files allowed per upload"


# ========== Visibility ==========

def test_private_file_hidden_until_made_public(client, alice, bob, headers):
    file_id = upload(client, headers(alice)).json()["data"]["file"]["id"]

    assert client.get(f"/api/files/{file_id}", headers=headers(bob)).status_code == 404
    assert client.get(f"/api/files/{file_id}/download", headers=headers(bob)).status_code == 404

    response = client.put(f"/api/files/{file_id}", json={"isPublic": True}, headers=headers(alice))
    assert response.status_code == 200

    assert client.get(f"/api/files/{file_id}", headers=headers(bob)).status_code == 200
    download = client.get(f"/api/files/{file_id}/download", headers=headers(bob))
    assert download.status_code == 200
    assert download.content == b"0123456789"


def test_public_file_is_still_owner_only_for_writes(client, alice, bob, headers):
    file_id = upload(client, headers(alice), isPublic="true").json()["data"]["file"]["id"]

    assert client.put(f"/api/files/{file_id}", json={"name": "mine"}, headers=headers(bob)).status_code == 404
    assert client.put(f"/api/files/{file_id}/move", json={"folderId": None}, headers=headers(bob)).status_code == 404
    assert client.delete(f"/api/files/{file_id}", headers=headers(bob)).status_code == 404


def test_download_records_event(client, alice, headers, db_session):
    file_id = upload(client, headers(alice)).json()["data"]["file"]["id"]

    client.get(f"/api/files/{file_id}/download", headers=headers(alice))

    event = db_session.query(AnalyticsEvent).filter_by(type=EventType.FILE_DOWNLOAD).one()
    assert event.user_id == alice.id
    assert event.file_id == file_id
    assert event.details == {"fileName": "a.txt", "fileSize": "10"}


def test_download_missing_object_is_not_found(client, alice, headers, store):
    file = upload(client, headers(alice)).json()["data"]["file"]
    store.delete(file["storageKey"])

    response = client.get(f"/api/files/{file['id']}/download", headers=headers(alice))

    assert response.status_code == 404
    assert response.json()["message"] == "File not found in storage"


def test_presigned_url_unsupported_on_local_storage(client, alice, headers):
    file_id = upload(client, headers(alice)).json()["data"]["file"]["id"]

    response = client.get(f"/api/files/{file_id}/url", headers=headers(alice))

    assert response.status_code == 500


# ========== Listing ==========

def test_list_files_paginates_and_searches(client, alice, bob, headers):
    for i in range(5):
        upload(client, headers(alice), name=f"report-{i}.txt", data=f"r{i}".encode())
    upload(client, headers(alice), name="photo.png", data=b"png", description="Holiday REPORT")
    upload(client, headers(bob), name="report-bob.txt", data=b"b")

    page = client.get("/api/files", params={"page": 2, "limit": 2}, headers=headers(alice)).json()
    assert page["pagination"] == {"page": 2, "limit": 2, "total": 6, "totalPages": 3}
    assert len(page["data"]["files"]) == 2

    found = client.get("/api/files", params={"search": "report", "limit": 50}, headers=headers(alice)).json()
    assert found["pagination"]["total"] == 6
    assert all(f["userId"] == alice.id for f in found["data"]["files"])

    found = client.get("/api/files", params={"search": "holiday"}, headers=headers(alice)).json()
    assert [f["name"] for f in found["data"]["files"]] == ["photo.png"]


def test_list_files_always_ordered_by_upload_time(alice, db_session, store):
    service = FileService(db_session, alice, store)
    first = service.upload_file(Upload(b"1", "b.txt"))
    second = service.upload_file(Upload(b"2", "a.txt"))
    first.uploaded_at = first.uploaded_at.replace(year=2020)
    db_session.commit()

    files, _ = service.list_files(sort_by="name", sort_order="desc")
    assert [f.id for f in files] == [second.id, first.id]

    files, _ = service.list_files(sort_by="name", sort_order="asc")
    assert [f.id for f in files] == [first.id, second.id]


def test_list_files_by_folder(client, alice, headers):
    folder_id = client.post("/api/folders", json={"name": "Docs"}, headers=headers(alice)).json()["data"]["folder"]["id"]
    upload(client, headers(alice), name="in.txt", folderId=folder_id)
    upload(client, headers(alice), name="out.txt")

    body = client.get("/api/files", params={"folderId": folder_id}, headers=headers(alice)).json()

    assert [f["name"] for f in body["data"]["files"]] == ["in.txt"]


def test_search_treats_wildcards_literally(alice, db_session, store):
    service = FileService(db_session, alice, store)
    service.upload_file(Upload(b"1", "report.txt"))
    service.upload_file(Upload(b"2", "q3_report.txt"))
    service.upload_file(Upload(b"3", "growth.txt"), description="up 50% on last year")

    files, total = service.list_files(search="_")
    assert total == 1
    assert [f.name for f in files] == ["q3_report.txt"]

    files, total = service.list_files(search="%")
    assert total == 1
    assert [f.name for f in files] == ["growth.txt"]

    _, total = service.list_files(search="\\")
    assert total == 0


# ========== Update / move ==========

def test_update_file_keeps_storage_fields(client, alice, headers):
    created = upload(client, headers(alice)).json()["data"]["file"]

    response = client.put(
        f"/api/files/{created['id']}",
        json={"name": "renamed.txt", "description": "d", "tags": ["x"]},
        headers=headers(alice),
    )

    updated = response.json()["data"]["file"]
    assert updated["name"] == "renamed.txt"
    assert updated["originalName"] == "a.txt"
    assert updated["tags"] == ["x"]
    assert updated["storageKey"] == created["storageKey"]
    assert updated["contentHash"] == created["contentHash"]
    assert updated["size"] == created["size"]


def test_move_file_between_folders(client, alice, headers):
    folder_id = client.post("/api/folders", json={"name": "Docs"}, headers=headers(alice)).json()["data"]["folder"]["id"]
    file_id = upload(client, headers(alice)).json()["data"]["file"]["id"]

    moved = client.put(f"/api/files/{file_id}/move", json={"folderId": folder_id}, headers=headers(alice))
    assert moved.json()["data"]["file"]["folderId"] == folder_id

    cleared = client.put(f"/api/files/{file_id}/move", json={"folderId": None}, headers=headers(alice))
    assert cleared.json()["data"]["file"]["folderId"] is None


def test_move_file_to_foreign_folder_is_rejected(client, alice, bob, headers):
    folder_id = client.post("/api/folders", json={"name": "Bob"}, headers=headers(bob)).json()["data"]["folder"]["id"]
    file_id = upload(client, headers(alice)).json()["data"]["file"]["id"]

    response = client.put(f"/api/files/{file_id}/move", json={"folderId": folder_id}, headers=headers(alice))

    assert response.status_code == 400
    assert response.json()["message"] == "Target folder not found"


def test_single_file_view_includes_folder_and_owner(client, alice, headers):
    folder = client.post("/api/folders", json={"name": "Docs"}, headers=headers(alice)).json()["data"]["folder"]
    file_id = upload(client, headers(alice), folderId=folder["id"]).json()["data"]["file"]["id"]

    file = client.get(f"/api/files/{file_id}", headers=headers(alice)).json()["data"]["file"]

    assert file["folder"] == {"id": folder["id"], "name": "Docs", "path": "/Docs"}
    assert file["user"] == {"id": alice.id, "username": "alice", "firstName": "Alice", "lastName": "Tester"}

    moved = client.put(f"/api/files/{file_id}/move", json={"folderId": None}, headers=headers(alice)).json()["data"]["file"]
    assert moved["folder"] is None
    assert moved["user"]["username"] == "alice"


# ========== Delete ==========

def test_delete_removes_object_and_row(client, alice, headers, store, db_session):
    file = upload(client, headers(alice)).json()["data"]["file"]

    response = client.delete(f"/api/files/{file['id']}", headers=headers(alice))

    assert response.status_code == 200
    assert not store.exists(file["storageKey"])
    assert db_session.get(FileMeta, file["id"]) is None


def test_delete_keeps_row_when_object_delete_fails(alice, db_session, tmp_path):
    store = FlakyStore(tmp_path / "flaky")
    service = FileService(db_session, alice, store)
    file = service.upload_file(Upload(b"data", "a.txt"))
    store.fail_delete = True

    with pytest.raises(StorageFailure):
        service.delete_file(file.id)

    assert db_session.get(FileMeta, file.id) is not None
    assert store.exists(file.storage_key)


def test_delete_keeps_object_shared_by_duplicate_upload(alice, db_session, store):
    service = FileService(db_session, alice, store)
    first = service.upload_file(Upload(b"same", "a.txt"))
    second = service.upload_file(Upload(b"same", "a.txt"))
    assert first.storage_key == second.storage_key

    service.delete_file(first.id)
    assert store.exists(second.storage_key)
    assert service.download_file(second.id)[1].read() == b"same"

    service.delete_file(second.id)
    assert not store.exists(second.storage_key)


def test_get_unknown_file_is_not_found(alice, db_session, store):
    with pytest.raises(NotFound):
        FileService(db_session, alice, store).get_file("missing")
