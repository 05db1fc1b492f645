"""HTTP API tests through the ASGI app with an in-process store."""

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from backr.main import app
from backr.store.memory import MemoryDocumentStore
from backr.store.records import RecordStore

API = "/api/v1"


@pytest.fixture
def memory_store():
    return MemoryDocumentStore()


@pytest_asyncio.fixture
async def client(memory_store):
    app.state.records = RecordStore(memory_store)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


def as_user(user_id: str) -> dict:
    return {"X-User-Id": user_id}


async def create_event(client, creator="creator", **overrides) -> dict:
    body = {"title": "Cup Final", "description": "Who wins?", "tag": "#sports"}
    body.update(overrides)
    response = await client.post(f"{API}/events", json=body, headers=as_user(creator))
    assert response.status_code == 201, response.text
    return response.json()


class TestCreateEvent:
    @pytest.mark.asyncio
    async def test_create(self, client):
        event = await create_event(client, maxBackingsPerUser=2)

        assert event["tag"] == "sports"
        assert event["creatorId"] == "creator"
        assert event["maxBackingsPerUser"] == 2
        assert event["isAdminOnly"] is False

    @pytest.mark.asyncio
    async def test_validation_error_envelope(self, client):
        response = await client.post(
            f"{API}/events",
            json={"title": "", "description": "d", "tag": "t"},
            headers={**as_user("creator"), "X-Request-ID": "req-1"},
        )

        assert response.status_code == 400
        assert response.json() == {
            "error": {
                "code": "VALIDATION_FAILED",
                "message": "Title is required",
                "details": {"field": "title"},
                "recoverable": True,
            },
            "traceId": "req-1",
        }
        assert response.headers["X-Request-ID"] == "req-1"

    @pytest.mark.asyncio
    async def test_anonymous_creator_forbidden(self, client):
        response = await client.post(
            f"{API}/events", json={"title": "t", "description": "d", "tag": "x"}
        )
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_admin_event_forces_toggles_off(self, client):
        response = await client.post(
            f"{API}/events/admin",
            json={
                "title": "Bake Off",
                "description": "Judged",
                "tag": "food",
                "participantNames": ["H1", "H2"],
            },
            headers=as_user("judge"),
        )

        event = response.json()
        assert response.status_code == 201
        assert event["isAdminOnly"] is True
        assert event["registrationEnabled"] is False
        assert event["backingEnabled"] is False
        assert event["maxBackingsPerUser"] == 0


class TestReadEvents:
    @pytest.mark.asyncio
    async def test_list_search_and_get(self, client):
        first = await create_event(client, title="Cup Final")
        await create_event(client, title="Bake Off", tag="food")

        listed = (await client.get(f"{API}/events")).json()["events"]
        searched = (await client.get(f"{API}/events", params={"q": "cup"})).json()["events"]
        fetched = await client.get(f"{API}/events/{first['id']}")

        assert [e["title"] for e in listed] == ["Bake Off", "Cup Final"]
        assert [e["id"] for e in searched] == [first["id"]]
        assert fetched.json()["title"] == "Cup Final"

    @pytest.mark.asyncio
    async def test_unknown_event_404(self, client):
        response = await client.get(f"{API}/events/missing")
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "EVENT_NOT_FOUND"


class TestToggles:
    @pytest.mark.asyncio
    async def test_creator_toggles(self, client):
        event = await create_event(client)

        response = await client.patch(
            f"{API}/events/{event['id']}/toggles",
            json={"field": "registrationEnabled", "value": False},
            headers=as_user("creator"),
        )

        assert response.status_code == 200
        assert response.json()["registrationEnabled"] is False

    @pytest.mark.asyncio
    async def test_stranger_forbidden(self, client):
        event = await create_event(client)

        response = await client.patch(
            f"{API}/events/{event['id']}/toggles",
            json={"field": "backingEnabled", "value": False},
            headers=as_user("stranger"),
        )

        assert response.status_code == 403
        assert response.json()["error"]["code"] == "NOT_AUTHORIZED"


class TestRegistrationAndBacking:
    @pytest.mark.asyncio
    async def test_register_twice_is_neutral(self, client):
        event = await create_event(client)
        url = f"{API}/events/{event['id']}/participations"

        first = await client.post(url, headers=as_user("a"))
        second = await client.post(url, headers=as_user("a"))

        assert first.status_code == 200
        assert first.json() == {"created": True, "recordId": f"{event['id']}_a", "notice": None}
        assert second.status_code == 200
        assert second.json()["created"] is False
        assert second.json()["notice"] == "You are already registered for this event"

    @pytest.mark.asyncio
    async def test_register_requires_identity(self, client):
        event = await create_event(client)
        response = await client.post(f"{API}/events/{event['id']}/participations")
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_quota_and_leaderboard(self, client):
        event = await create_event(client)
        base = f"{API}/events/{event['id']}"
        for user in ("A", "B"):
            await client.post(f"{base}/participations", headers=as_user(user))

        first = await client.post(
            f"{base}/backings", json={"targetUserId": "A"}, headers=as_user("u")
        )
        second = await client.post(
            f"{base}/backings", json={"targetUserId": "B"}, headers=as_user("u")
        )
        unknown = await client.post(
            f"{base}/backings", json={"targetUserId": "ghost"}, headers=as_user("v")
        )
        board = (await client.get(f"{base}/leaderboard", headers=as_user("u"))).json()

        assert first.status_code == 200
        assert second.status_code == 409
        assert second.json()["error"]["code"] == "QUOTA_EXCEEDED"
        assert second.json()["error"]["recoverable"] is False
        assert unknown.status_code == 409
        assert unknown.json()["error"]["code"] == "UNKNOWN_TARGET"
        assert [(e["subjectId"], e["score"], e["tier"]) for e in board["entries"]] == [
            ("A", 1, "1st"),
            ("B", 0, "2nd"),
        ]
        assert board["viewer"]["backedTargets"] == ["A"]
        assert board["viewer"]["remainingQuota"] == 0

    @pytest.mark.asyncio
    async def test_disabled_backing_409(self, client):
        event = await create_event(client, backingEnabled=False)
        base = f"{API}/events/{event['id']}"
        await client.post(f"{base}/participations", headers=as_user("A"))

        response = await client.post(
            f"{base}/backings", json={"targetUserId": "A"}, headers=as_user("u")
        )

        assert response.status_code == 409
        assert response.json()["error"]["code"] == "FEATURE_DISABLED"

    @pytest.mark.asyncio
    async def test_store_down_503(self, client, memory_store):
        event = await create_event(client)
        memory_store.disconnect()

        response = await client.post(
            f"{API}/events/{event['id']}/participations", headers=as_user("a")
        )

        assert response.status_code == 503
        assert response.json()["error"]["code"] == "TRANSPORT_FAILED"
        assert response.json()["error"]["recoverable"] is True
        assert response.json()["traceId"]


class TestManagedParticipants:
    @pytest.mark.asyncio
    async def test_admin_scoring(self, client):
        created = await client.post(
            f"{API}/events/admin",
            json={"title": "Bake Off", "description": "Judged", "tag": "food"},
            headers=as_user("judge"),
        )
        base = f"{API}/events/{created.json()['id']}"

        h1 = (await client.post(
            f"{base}/managed-participants", json={"name": "H1"}, headers=as_user("judge")
        )).json()
        h2 = (await client.post(
            f"{base}/managed-participants", json={"name": "H2"}, headers=as_user("judge")
        )).json()
        await client.put(
            f"{base}/managed-participants/{h1['id']}/points",
            json={"points": 120},
            headers=as_user("judge"),
        )
        await client.put(
            f"{base}/managed-participants/{h2['id']}/points",
            json={"points": 300},
            headers=as_user("judge"),
        )
        stranger = await client.put(
            f"{base}/managed-participants/{h2['id']}/points",
            json={"points": 999},
            headers=as_user("stranger"),
        )
        board = (await client.get(f"{base}/leaderboard")).json()

        assert stranger.status_code == 403
        assert [(e["displayName"], e["tier"], e["score"]) for e in board["entries"]] == [
            ("H2", "1st", 300),
            ("H1", "2nd", 120),
        ]
        assert board["viewer"] is None


class TestHealth:
    @pytest.mark.asyncio
    async def test_health(self, client, memory_store):
        assert (await client.get("/health")).json() == {"status": "alive"}
        assert (await client.get("/health/ready")).status_code == 200

        memory_store.disconnect()
        assert (await client.get("/health/ready")).status_code == 503
