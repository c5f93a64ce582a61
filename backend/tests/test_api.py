"""
NoteKeeper Backend — API Endpoint Tests
=========================================

What:  The HTTP contract, end to end through FastAPI with a real
       temporary database.

What we test:
    ✅ Register → login → create → list → delete → list
    ✅ Users cannot see, edit or delete each other's notes (404)
    ✅ Listing reflects every mutation (cache coherence)
    ✅ Missing / expired tokens and deleted accounts → 401
    ✅ Bad input → 400 with a field map; duplicates → 409
    ✅ /me, /health and the X-Request-ID header
"""

import asyncio
from datetime import timedelta

import pytest

from notekeeper.database import utcnow
from notekeeper.services.credential_store import CredentialStore
from notekeeper.services.note_repository import NoteRepository


async def create_note(client, headers, title="Groceries", body="eggs, milk") -> dict:
    response = await client.post("/notes", json={"title": title, "body": body}, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


class TestScenario:
    @pytest.mark.asyncio
    async def test_full_lifecycle(self, client, register_user):
        headers = await register_user("alice")
        me = (await client.get("/me", headers=headers)).json()

        note = await create_note(client, headers)
        assert note["user_id"] == me["id"]
        assert note["title"] == "Groceries"
        assert note["deleted_at"] is None

        listed = (await client.get("/notes", headers=headers)).json()
        assert [n["id"] for n in listed] == [note["id"]]

        response = await client.delete(f"/notes/{note['id']}", headers=headers)
        assert response.status_code == 204
        assert response.content == b""

        response = await client.get("/notes", headers=headers)
        assert response.status_code == 200
        assert response.json() == []

    @pytest.mark.asyncio
    async def test_register_never_returns_password(self, client):
        response = await client.post(
            "/register",
            json={
                "username": "carol",
                "password": "long-enough-pw",
                "first_name": "Carol",
                "last_name": "Danvers",
                "email": "carol@notekeeper.io",
                "city": "Boston",
            },
        )
        assert response.status_code == 201
        body = response.json()
        assert body["username"] == "carol"
        assert body["city"] == "Boston"
        assert not any("password" in key for key in body)

    @pytest.mark.asyncio
    async def test_body_user_id_is_ignored(self, client, register_user):
        alice = await register_user("alice")
        await register_user("bob")
        bob_id = 2

        response = await client.post(
            "/notes", json={"title": "t", "body": "b", "user_id": bob_id}, headers=alice
        )

        assert response.status_code == 201
        assert response.json()["user_id"] != bob_id


class TestIsolation:
    @pytest.mark.asyncio
    async def test_foreign_note_is_not_found(self, client, register_user):
        alice = await register_user("alice")
        bob = await register_user("bob")
        bobs_note = await create_note(client, bob, title="bob's secret")

        assert (await client.get("/notes", headers=alice)).json() == []

        response = await client.put(
            f"/notes/{bobs_note['id']}", json={"title": "mine", "body": "now"}, headers=alice
        )
        assert response.status_code == 404
        assert response.json()["error"] == "not_found"

        response = await client.delete(f"/notes/{bobs_note['id']}", headers=alice)
        assert response.status_code == 404

        # Same answer as for an id that does not exist at all
        missing = await client.delete("/notes/99999", headers=alice)
        assert missing.status_code == 404
        assert missing.json()["error"] == response.json()["error"]

        listed = (await client.get("/notes", headers=bob)).json()
        assert [n["title"] for n in listed] == ["bob's secret"]

    @pytest.mark.asyncio
    async def test_deleted_note_cannot_be_updated_or_redeleted(self, client, register_user):
        alice = await register_user("alice")
        note = await create_note(client, alice)
        await client.delete(f"/notes/{note['id']}", headers=alice)

        response = await client.put(
            f"/notes/{note['id']}", json={"title": "t", "body": "b"}, headers=alice
        )
        assert response.status_code == 404
        assert (await client.delete(f"/notes/{note['id']}", headers=alice)).status_code == 404

    @pytest.mark.asyncio
    async def test_oversized_note_id_is_not_found(self, client, register_user):
        alice = await register_user("alice")
        huge = "99999999999999999999"

        response = await client.put(
            f"/notes/{huge}", json={"title": "t", "body": "b"}, headers=alice
        )
        assert response.status_code == 404
        assert response.json()["error"] == "not_found"

        response = await client.delete(f"/notes/{huge}", headers=alice)
        assert response.status_code == 404
        assert response.json()["error"] == "not_found"

    @pytest.mark.asyncio
    async def test_soft_deleted_row_is_kept(self, client, register_user, session_factory):
        alice = await register_user("alice")
        note = await create_note(client, alice)
        await client.delete(f"/notes/{note['id']}", headers=alice)

        async with session_factory() as session:
            row = await NoteRepository(session).get_any(note["id"])
        assert row is not None
        assert row.deleted_at is not None


class TestCacheCoherence:
    @pytest.mark.asyncio
    async def test_list_reflects_update(self, client, register_user, note_cache):
        alice = await register_user("alice")
        note = await create_note(client, alice, title="draft")

        first = (await client.get("/notes", headers=alice)).json()
        assert first[0]["title"] == "draft"
        assert note_cache.size == 1

        response = await client.put(
            f"/notes/{note['id']}", json={"title": "final", "body": "done"}, headers=alice
        )
        assert response.status_code == 200
        updated = response.json()
        assert updated["title"] == "final"
        assert updated["created_at"] == note["created_at"]

        second = (await client.get("/notes", headers=alice)).json()
        assert [(n["title"], n["body"]) for n in second] == [("final", "done")]

    @pytest.mark.asyncio
    async def test_other_users_mutation_keeps_lists_correct(self, client, register_user):
        alice = await register_user("alice")
        bob = await register_user("bob")
        await create_note(client, alice, title="a1")
        assert len((await client.get("/notes", headers=alice)).json()) == 1

        await create_note(client, bob, title="b1")

        assert [n["title"] for n in (await client.get("/notes", headers=alice)).json()] == ["a1"]
        assert [n["title"] for n in (await client.get("/notes", headers=bob)).json()] == ["b1"]

    @pytest.mark.asyncio
    async def test_concurrent_updates_leave_one_payload(self, client, register_user):
        alice = await register_user("alice")
        note = await create_note(client, alice)
        payloads = [{"title": f"title {i}", "body": f"body {i}"} for i in range(4)]

        responses = await asyncio.gather(
            *(client.put(f"/notes/{note['id']}", json=p, headers=alice) for p in payloads)
        )

        assert all(r.status_code == 200 for r in responses)
        final = (await client.get("/notes", headers=alice)).json()
        assert len(final) == 1
        assert {"title": final[0]["title"], "body": final[0]["body"]} in payloads


class TestAuthentication:
    @pytest.mark.asyncio
    async def test_missing_token(self, client):
        response = await client.get("/notes")
        assert response.status_code == 401
        assert response.headers["WWW-Authenticate"] == "Bearer"
        assert response.json()["error"] == "unauthorized"

    @pytest.mark.asyncio
    async def test_garbage_token(self, client):
        response = await client.get("/notes", headers={"Authorization": "Bearer nope"})
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_bare_token_is_accepted(self, client, register_user):
        headers = await register_user("alice")
        bare = headers["Authorization"].split(" ", 1)[1]
        response = await client.get("/notes", headers={"Authorization": bare})
        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_expired_token(self, client, register_user, app):
        await register_user("alice")
        token = app.state.token_service.issue(1, now=utcnow() - timedelta(hours=25))
        response = await client.get("/notes", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_deleted_account_token_stops_working(
        self, client, register_user, session_factory
    ):
        headers = await register_user("alice")
        me = (await client.get("/me", headers=headers)).json()

        async with session_factory() as session:
            await CredentialStore().soft_delete(session, me["id"])

        assert (await client.get("/notes", headers=headers)).status_code == 401
        assert (await client.get("/me", headers=headers)).status_code == 401
        response = await client.post("/login", json={"username": "alice", "password": "correct-horse-battery"})
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_wrong_password(self, client, register_user):
        await register_user("alice")
        response = await client.post("/login", json={"username": "alice", "password": "wrong-one"})
        assert response.status_code == 401
        assert "token" not in response.json()

    @pytest.mark.asyncio
    async def test_login_username_is_stripped_like_registration(self, client):
        response = await client.post(
            "/register",
            json={
                "username": " carol ",
                "password": "correct-horse-battery",
                "first_name": "Carol",
                "last_name": "Tester",
                "email": "carol@notekeeper.io",
            },
        )
        assert response.status_code == 201
        assert response.json()["username"] == "carol"

        response = await client.post(
            "/login", json={"username": " carol ", "password": "correct-horse-battery"}
        )
        assert response.status_code == 200
        assert response.json()["token"]

    @pytest.mark.asyncio
    async def test_protected_route_rejects_before_validation_of_body(self, client):
        response = await client.post("/notes", json={"title": ""})
        assert response.status_code == 401


class TestValidation:
    @pytest.mark.asyncio
    async def test_missing_and_blank_fields(self, client, register_user):
        alice = await register_user("alice")

        response = await client.post("/notes", json={"title": "   "}, headers=alice)

        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "validation_error"
        assert set(body["details"]) == {"title", "body"}

    @pytest.mark.asyncio
    async def test_malformed_json(self, client, register_user):
        alice = await register_user("alice")
        response = await client.post(
            "/notes",
            content=b"{not json",
            headers={**alice, "Content-Type": "application/json"},
        )
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_non_integer_note_id(self, client, register_user):
        alice = await register_user("alice")
        response = await client.put("/notes/abc", json={"title": "t", "body": "b"}, headers=alice)
        assert response.status_code == 400
        assert "note_id" in response.json()["details"]

    @pytest.mark.asyncio
    async def test_registration_rules(self, client):
        response = await client.post(
            "/register",
            json={
                "username": "ab",
                "password": "short",
                "first_name": "A",
                "last_name": "B",
                "email": "not-an-email",
            },
        )
        assert response.status_code == 400
        assert {"username", "password", "email"} <= set(response.json()["details"])

    @pytest.mark.asyncio
    async def test_duplicate_registration(self, client, register_user):
        await register_user("alice")
        response = await client.post(
            "/register",
            json={
                "username": "alice",
                "password": "another-password",
                "first_name": "Alice",
                "last_name": "Again",
                "email": "alice2@notekeeper.io",
            },
        )
        assert response.status_code == 409
        assert response.json()["error"] == "conflict"


class TestProfileAndHealth:
    @pytest.mark.asyncio
    async def test_read_and_update_profile(self, client, register_user):
        alice = await register_user("alice")

        response = await client.patch(
            "/me", json={"city": "Paris", "date_of_birth": "1991-02-03"}, headers=alice
        )
        assert response.status_code == 200
        assert response.json()["city"] == "Paris"

        me = (await client.get("/me", headers=alice)).json()
        assert me["city"] == "Paris"
        assert me["date_of_birth"] == "1991-02-03"
        assert me["username"] == "alice"
        assert "password_hash" not in me

    @pytest.mark.asyncio
    async def test_profile_cannot_null_names(self, client, register_user):
        alice = await register_user("alice")
        response = await client.patch("/me", json={"first_name": None}, headers=alice)
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_health(self, client):
        response = await client.get("/health")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["database"] == "connected"

    @pytest.mark.asyncio
    async def test_request_id_is_echoed(self, client):
        response = await client.get("/health", headers={"X-Request-ID": "trace-123"})
        assert response.headers["X-Request-ID"] == "trace-123"

        response = await client.get("/notes")
        assert response.headers["X-Request-ID"]
        assert response.json()["request_id"] == response.headers["X-Request-ID"]


class TestConfiguration:
    def test_missing_signing_key_refuses_to_start(self):
        from notekeeper.config import Settings
        from notekeeper.exceptions import ConfigurationError
        from notekeeper.main import create_app

        with pytest.raises(ConfigurationError):
            create_app(Settings(jwt_secret_key=""))
