import asyncio
import json

import httpx
import pytest

from tradejournal.integrations.journal_api import JournalApiClient
from tradejournal.linking.brokers import Broker
from tradejournal.linking.surfaces import LoginSurface
from tradejournal.services.accounts_service import AccountLinker

BASE_URL = "http://journal.test/api/v1"
LOGIN_URL = "https://broker.example/login?x=1"


class FakeJournalBackend:
    """In-memory stand-in for the journal backend's broker endpoints."""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.store: dict[tuple[str, str], dict] = {}
        self.responses: dict[str, tuple[int, dict]] = {}
        self.errors: dict[str, Exception] = {}
        self.gates: dict[str, asyncio.Event] = {}
        # Backend formats expiry as IST wall-clock time with no offset
        self.consume_expiry = "2025-01-01T05:30:00"
        self.renew_expiry = "2025-01-02T05:30:00"

    def seed(self, segment: str, user: int = 1, **entry) -> None:
        self.store[(str(user), segment)] = entry

    def respond(self, action: str, status: int, body=None, content: bytes | None = None) -> None:
        if content is not None:
            self.responses[action] = (status, {"content": content})
        else:
            self.responses[action] = (status, {"json": body})

    def calls(self, action: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path.endswith(f"/{action}")]

    def body(self, request: httpx.Request) -> dict:
        return json.loads(request.content) if request.content else {}

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        user, segment, action = request.url.path.split("/")[-3:]
        if action in self.gates:
            await self.gates[action].wait()
        if action in self.errors:
            raise self.errors[action]
        if action in self.responses:
            status, kwargs = self.responses[action]
            return httpx.Response(status, **kwargs)

        entry = self.store.setdefault((user, segment), {})
        body = self.body(request)
        client_key = f"{segment}_client_id"

        if action == "config":
            data = {
                "configured": entry.get("configured", False),
                "has_credentials": "api_key" in entry,
                client_key: entry.get("client_id"),
                f"{segment}_client_name": entry.get("client_name"),
                "expiry_time": entry.get("expiry_time"),
            }
        elif action == "save-credentials":
            entry.update(
                api_key=body["api_key"],
                api_secret=body["api_secret"],
                client_id=body.get(client_key),
                configured=False,
            )
            data = {"configured": False}
        elif action == "generate-consent":
            if "api_key" not in entry:
                return httpx.Response(400, json={"error": "credentials not saved"})
            data = {
                "consent_app_id": "app-1",
                "consent_app_status": "GENERATED",
                "status": "success",
                "login_url": LOGIN_URL,
            }
        elif action == "consume-consent":
            if not body.get("token_id"):
                return httpx.Response(400, json={"error": "token_id is required"})
            entry.update(configured=True, client_name="Test Trader", expiry_time=self.consume_expiry)
            data = {
                client_key: entry.get("client_id"),
                f"{segment}_client_name": "Test Trader",
                f"{segment}_client_ucc": "UCC1",
                "given_power_of_attorney": False,
                "access_token": "tok-1",
                "expiry_time": self.consume_expiry,
            }
        elif action == "renew-token":
            if not entry.get("configured"):
                return httpx.Response(400, json={"error": "no active session"})
            entry["expiry_time"] = self.renew_expiry
            data = {"status": "success", "access_token": "tok-2", "expiry_time": self.renew_expiry}
        else:
            return httpx.Response(404, json={"error": "not found"})

        return httpx.Response(200, json={"message": "ok", "data": data})


class RecordingSurface(LoginSurface):
    def __init__(self, blocked: bool = False):
        self.blocked = blocked
        self.opened: list[tuple[str, str, int, int]] = []

    def open(self, url, name, width, height):
        self.opened.append((url, name, width, height))
        return None if self.blocked else object()


def make_client(backend: FakeJournalBackend) -> JournalApiClient:
    return JournalApiClient(BASE_URL, transport=httpx.MockTransport(backend.handler))


@pytest.fixture
def backend():
    return FakeJournalBackend()


@pytest.fixture
async def api(backend):
    client = make_client(backend)
    yield client
    await client.aclose()


@pytest.fixture
def surface():
    return RecordingSurface()


@pytest.fixture
def linker(api, surface):
    return AccountLinker(api, 1, [Broker.DHAN, Broker.ZERODHA], surface)


@pytest.fixture
def connected(backend):
    backend.seed(
        "dhan",
        api_key="K1",
        api_secret="S1",
        client_id="C1",
        client_name="Test Trader",
        configured=True,
        expiry_time="2025-01-01T05:30:00",
    )
    return backend
