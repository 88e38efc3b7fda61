"""Tests for the journal backend REST client.

Covers:
- Envelope unwrapping and broker-prefixed field mapping
- Tolerance of partial configuration payloads
- Error text extraction from failed responses
- Transport failures
"""

from datetime import datetime, timezone

import httpx
import pytest

from tradejournal.exceptions import BackendUnavailableError, JournalApiError
from tradejournal.linking.brokers import Broker, get_profile

DHAN = get_profile(Broker.DHAN)
ZERODHA = get_profile(Broker.ZERODHA)


class TestGetConfig:
    async def test_maps_dhan_fields(self, api, connected):
        config = await api.get_config(1, DHAN)
        assert config.configured is True
        assert config.has_credentials is True
        assert config.client_id == "C1"
        assert config.client_name == "Test Trader"
        assert config.expiry_time == datetime(2025, 1, 1, tzinfo=timezone.utc)

    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("2025-03-10T15:30:00", datetime(2025, 3, 10, 10, 0, tzinfo=timezone.utc)),
            ("2025-03-10T15:30:00Z", datetime(2025, 3, 10, 15, 30, tzinfo=timezone.utc)),
            ("2025-03-10T15:30:00+05:30", datetime(2025, 3, 10, 10, 0, tzinfo=timezone.utc)),
        ],
    )
    async def test_expiry_without_offset_is_ist(self, api, backend, raw, expected):
        backend.respond(
            "config", 200,
            {"message": "ok", "data": {"configured": True, "dhan_client_id": "C1", "expiry_time": raw}},
        )
        config = await api.get_config(1, DHAN)
        assert config.expiry_time == expected

    async def test_requests_user_scoped_path(self, api, backend):
        await api.get_config(7, DHAN)
        assert backend.requests[0].method == "GET"
        assert backend.requests[0].url.path == "/api/v1/users/7/dhan/config"

    async def test_empty_config(self, api, backend):
        config = await api.get_config(1, DHAN)
        assert config.configured is False
        assert config.has_credentials is False
        assert config.client_id is None
        assert config.expiry_time is None

    async def test_tolerates_missing_fields(self, api, backend):
        backend.respond("config", 200, {"message": "ok", "data": {"configured": False}})
        config = await api.get_config(1, DHAN)
        assert config.has_credentials is False
        assert config.client_name is None

    async def test_missing_data_envelope(self, api, backend):
        backend.respond("config", 200, {"message": "ok"})
        config = await api.get_config(1, DHAN)
        assert config.configured is False

    async def test_blank_client_id_is_absent(self, api, backend):
        backend.respond(
            "config", 200,
            {"message": "ok", "data": {"configured": False, "has_credentials": True, "dhan_client_id": "  "}},
        )
        config = await api.get_config(1, DHAN)
        assert config.has_credentials is True
        assert config.client_id is None

    async def test_unparseable_expiry_is_ignored(self, api, backend):
        backend.respond(
            "config", 200,
            {"message": "ok", "data": {"configured": True, "dhan_client_id": "C1", "expiry_time": "soon"}},
        )
        config = await api.get_config(1, DHAN)
        assert config.expiry_time is None
        assert config.client_id == "C1"

    async def test_configured_implies_credentials(self, api, backend):
        backend.respond(
            "config", 200, {"message": "ok", "data": {"configured": True, "dhan_client_id": "C1"}}
        )
        config = await api.get_config(1, DHAN)
        assert config.has_credentials is True

    async def test_zerodha_uses_its_own_segment_and_prefix(self, api, backend):
        backend.seed("zerodha", api_key="Z", api_secret="S", client_id="ZC1", configured=True)
        config = await api.get_config(1, ZERODHA)
        assert backend.requests[0].url.path == "/api/v1/users/1/zerodha/config"
        assert config.client_id == "ZC1"


class TestMutations:
    async def test_save_credentials_body(self, api, backend):
        result = await api.save_credentials(1, DHAN, "K1", "S1", "C1")
        assert result.configured is False
        request = backend.calls("save-credentials")[0]
        assert request.method == "POST"
        assert backend.body(request) == {"api_key": "K1", "api_secret": "S1", "dhan_client_id": "C1"}

    async def test_save_credentials_omits_empty_client_id(self, api, backend):
        await api.save_credentials(1, DHAN, "K1", "S1", "")
        assert "dhan_client_id" not in backend.body(backend.calls("save-credentials")[0])

    async def test_generate_consent(self, api, backend):
        backend.seed("dhan", api_key="K1", api_secret="S1", client_id="C1")
        consent = await api.generate_consent(1, DHAN)
        assert consent.login_url == "https://broker.example/login?x=1"
        assert consent.consent_app_id == "app-1"

    async def test_generate_consent_without_login_url(self, api, backend):
        backend.respond("generate-consent", 200, {"message": "ok", "data": {"status": "success"}})
        with pytest.raises(JournalApiError, match="Unexpected response"):
            await api.generate_consent(1, DHAN)

    async def test_consume_consent(self, api, backend):
        backend.seed("dhan", api_key="K1", api_secret="S1", client_id="C1")
        result = await api.consume_consent(1, DHAN, "abc123")
        assert backend.body(backend.calls("consume-consent")[0]) == {"token_id": "abc123"}
        assert result.client_id == "C1"
        assert result.client_ucc == "UCC1"
        assert result.access_token.get_secret_value() == "tok-1"
        assert "tok-1" not in repr(result)

    async def test_renew_token_sends_empty_identifiers(self, api, connected):
        result = await api.renew_token(1, DHAN)
        request = connected.calls("renew-token")[0]
        assert connected.body(request) == {"access_token": "", "dhan_client_id": ""}
        assert result.expiry_time == datetime(2025, 1, 2, tzinfo=timezone.utc)


class TestErrors:
    async def test_error_field(self, api, backend):
        backend.respond("save-credentials", 400, {"error": "invalid api key"})
        with pytest.raises(JournalApiError) as exc_info:
            await api.save_credentials(1, DHAN, "bad", "S1", "C1")
        assert exc_info.value.message == "invalid api key"
        assert exc_info.value.upstream_status == 400

    async def test_message_field(self, api, backend):
        backend.respond("config", 404, {"message": "user not found"})
        with pytest.raises(JournalApiError, match="user not found"):
            await api.get_config(1, DHAN)

    async def test_unparseable_body(self, api, backend):
        backend.respond("renew-token", 500, content=b"<html>oops</html>")
        with pytest.raises(JournalApiError, match=r"HTTP error! status: 500"):
            await api.renew_token(1, DHAN)

    async def test_body_without_error_text(self, api, backend):
        backend.respond("config", 503, {"detail": "down"})
        with pytest.raises(JournalApiError, match=r"HTTP error! status: 503"):
            await api.get_config(1, DHAN)

    async def test_invalid_json_on_success(self, api, backend):
        backend.respond("config", 200, content=b"not json")
        with pytest.raises(JournalApiError, match="Invalid JSON"):
            await api.get_config(1, DHAN)

    async def test_transport_failure(self, api, backend):
        backend.errors["config"] = httpx.ConnectError("connection refused")
        with pytest.raises(BackendUnavailableError, match="connection refused"):
            await api.get_config(1, DHAN)
