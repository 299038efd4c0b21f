"""HTTP tests for the clips API with the database dependency pointed at SQLite."""

import itertools

import pytest
from fastapi.testclient import TestClient

from clips import main
from clips.ids import AidGenerator
from clips.policies import SettingsPolicyLookup, UserPolicies

from .conftest import clipped_count

ALICE = {"X-User-Id": "alice"}
BOB = {"X-User-Id": "bob"}


@pytest.fixture
def client(db, monkeypatch):
    def override_get_db():
        yield db

    main.app.dependency_overrides[main.get_db] = override_get_db
    main.request_counts.clear()
    monkeypatch.setattr(main, "policy_lookup", SettingsPolicyLookup(UserPolicies(clip_limit=1, note_each_clips_limit=5)))
    ticks = itertools.count(1_700_000_000_000)
    monkeypatch.setattr(main, "id_generator", AidGenerator(clock=lambda: next(ticks)))

    yield TestClient(main.app)

    main.app.dependency_overrides.clear()


def create(client, headers=ALICE, **body):
    payload = {"name": "reading-list", "is_public": False}
    payload.update(body)
    return client.post("/clips", json=payload, headers=headers)


class TestClipEndpoints:
    def test_requires_user(self, client):
        response = client.get("/clips")
        assert response.status_code == 401

    def test_create_and_show(self, client):
        response = create(client, description="papers")
        assert response.status_code == 200
        clip = response.json()
        assert clip["name"] == "reading-list"
        assert clip["is_public"] is False
        assert clip["description"] == "papers"
        assert clip["user_id"] == "alice"
        assert clip["created_at"]

        shown = client.get(f"/clips/{clip['id']}", headers=ALICE)
        assert shown.status_code == 200
        assert shown.json()["id"] == clip["id"]

    def test_create_validates_name(self, client):
        response = create(client, name="")
        assert response.status_code == 422

    def test_too_many_clips(self, client):
        assert create(client, name="one").status_code == 200
        assert create(client, name="two").status_code == 200

        response = create(client, name="three")
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "TOO_MANY_CLIPS"

    def test_list_only_own_clips(self, client):
        create(client, name="one")
        create(client, name="two")
        create(client, headers=BOB, name="bobs")

        response = client.get("/clips", headers=ALICE)
        assert response.status_code == 200
        assert [c["name"] for c in response.json()] == ["two", "one"]

    def test_private_clip_hidden_from_others(self, client):
        clip = create(client).json()

        response = client.get(f"/clips/{clip['id']}", headers=BOB)
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "NO_SUCH_CLIP"

    def test_public_clip_visible_to_others(self, client):
        clip = create(client, is_public=True).json()

        response = client.get(f"/clips/{clip['id']}", headers=BOB)
        assert response.status_code == 200

    def test_update(self, client):
        clip = create(client, description="old").json()

        response = client.patch(f"/clips/{clip['id']}", json={"name": "renamed"}, headers=ALICE)
        assert response.status_code == 204

        shown = client.get(f"/clips/{clip['id']}", headers=ALICE).json()
        assert shown["name"] == "renamed"
        assert shown["description"] == "old"

        client.patch(f"/clips/{clip['id']}", json={"description": None}, headers=ALICE)
        assert client.get(f"/clips/{clip['id']}", headers=ALICE).json()["description"] is None

    def test_update_foreign_clip(self, client):
        clip = create(client, is_public=True).json()

        response = client.patch(f"/clips/{clip['id']}", json={"name": "mine now"}, headers=BOB)
        assert response.status_code == 404

    def test_delete(self, client):
        clip = create(client).json()

        assert client.delete(f"/clips/{clip['id']}", headers=BOB).status_code == 404
        assert client.delete(f"/clips/{clip['id']}", headers=ALICE).status_code == 204
        assert client.get(f"/clips/{clip['id']}", headers=ALICE).status_code == 404


class TestClipNoteEndpoints:
    def test_add_list_remove(self, client, db, notes):
        clip = create(client).json()

        response = client.post(f"/clips/{clip['id']}/notes", json={"note_id": "n1"}, headers=ALICE)
        assert response.status_code == 204
        assert clipped_count(db, "n1") == 1

        listed = client.get(f"/clips/{clip['id']}/notes", headers=ALICE).json()
        assert listed == {"clip_id": clip["id"], "note_ids": ["n1"]}

        duplicate = client.post(f"/clips/{clip['id']}/notes", json={"note_id": "n1"}, headers=ALICE)
        assert duplicate.status_code == 409
        assert duplicate.json()["error"]["code"] == "ALREADY_ADDED"

        removed = client.delete(f"/clips/{clip['id']}/notes/n1", headers=ALICE)
        assert removed.status_code == 204
        assert clipped_count(db, "n1") == 0

    def test_unknown_note(self, client, notes):
        clip = create(client).json()

        response = client.post(f"/clips/{clip['id']}/notes", json={"note_id": "nope"}, headers=ALICE)
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "NO_SUCH_NOTE"

    def test_add_to_foreign_clip(self, client, notes):
        clip = create(client, is_public=True).json()

        response = client.post(f"/clips/{clip['id']}/notes", json={"note_id": "n1"}, headers=BOB)
        assert response.status_code == 404

    def test_foreign_clip_wins_over_unknown_note(self, client, notes):
        clip = create(client, is_public=True).json()

        response = client.post(f"/clips/{clip['id']}/notes", json={"note_id": "nope"}, headers=BOB)
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "NO_SUCH_CLIP"

    def test_private_clip_notes_hidden(self, client, notes):
        clip = create(client).json()

        assert client.get(f"/clips/{clip['id']}/notes", headers=BOB).status_code == 404


class TestOperationalEndpoints:
    def test_health(self, client):
        assert client.get("/health").json()["status"] == "healthy"

    def test_metrics(self, client):
        create(client)

        response = client.get("/metrics")
        assert response.status_code == 200
        assert "clips_total 1.0" in response.text
        assert "clip_operations_total" in response.text

    def test_rate_limit(self, client):
        main.request_counts[("testclient", "read")] = [main.time.time()] * 1000

        response = client.get("/clips", headers=ALICE)
        assert response.status_code == 429

    def test_reads_do_not_use_the_write_budget(self, client):
        for _ in range(main.settings.rate_limit_write_requests):
            assert client.get("/clips", headers=ALICE).status_code == 200

        assert create(client).status_code == 200

    def test_write_limit_leaves_reads_alone(self, client):
        main.request_counts[("testclient", "write")] = [main.time.time()] * 1000

        assert create(client).status_code == 429
        assert client.get("/clips", headers=ALICE).status_code == 200

    def test_idle_clients_are_forgotten(self, client):
        long_ago = main.time.time() - main.settings.rate_limit_window - 1
        main.request_counts[("10.0.0.1", "read")] = [long_ago]
        main.request_counts[("10.0.0.2", "write")] = [long_ago]

        client.get("/clips", headers=ALICE)

        assert ("10.0.0.1", "read") not in main.request_counts
        # Buckets of other scopes are pruned by their own endpoints
        assert ("10.0.0.2", "write") in main.request_counts
        assert len(main.request_counts[("testclient", "read")]) == 1
