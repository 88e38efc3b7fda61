"""Async client for the journal backend's broker linking endpoints."""

import logging
from typing import Any, Callable, TypeVar

import httpx
from pydantic import ValidationError

from tradejournal.config import get_settings
from tradejournal.exceptions import BackendUnavailableError, JournalApiError
from tradejournal.linking.brokers import BrokerProfile
from tradejournal.schemas.broker import (
    BrokerConfig,
    ConsentResponse,
    ConsumeConsentResponse,
    RenewTokenResponse,
    SaveCredentialsResult,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _error_message(response: httpx.Response) -> str:
    """Pull `error` or `message` out of a failed response body."""
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        message = body.get("error") or body.get("message")
        if message:
            return str(message)
    return f"HTTP error! status: {response.status_code}"


class JournalApiClient:
    """Talks to `/users/{user_id}/{broker}/...` on the journal backend.

    Every successful answer is wrapped as ``{"message": ..., "data": {...}}``;
    only ``data`` is handed back to callers, parsed into the broker schemas.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float | None = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._http = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            transport=transport,
            headers={"Content-Type": "application/json"},
        )

    @classmethod
    def from_settings(cls) -> "JournalApiClient":
        settings = get_settings()
        return cls(settings.journal_api_url, timeout=settings.journal_api_timeout_seconds)

    async def aclose(self) -> None:
        await self._http.aclose()

    # ── Credential store ──

    async def get_config(self, user_id: int, profile: BrokerProfile) -> BrokerConfig:
        data = await self._request("GET", self._path(user_id, profile, "config"))
        return self._parse(lambda: BrokerConfig.from_payload(data, profile))

    async def save_credentials(
        self,
        user_id: int,
        profile: BrokerProfile,
        api_key: str,
        api_secret: str,
        client_id: str | None = None,
    ) -> SaveCredentialsResult:
        body = {"api_key": api_key, "api_secret": api_secret}
        if client_id:
            body[profile.client_id_field] = client_id
        data = await self._request("POST", self._path(user_id, profile, "save-credentials"), body)
        return self._parse(lambda: SaveCredentialsResult.model_validate(data))

    # ── Consent ──

    async def generate_consent(self, user_id: int, profile: BrokerProfile) -> ConsentResponse:
        data = await self._request("POST", self._path(user_id, profile, "generate-consent"))
        return self._parse(lambda: ConsentResponse.model_validate(data))

    async def consume_consent(
        self, user_id: int, profile: BrokerProfile, token_id: str
    ) -> ConsumeConsentResponse:
        data = await self._request(
            "POST", self._path(user_id, profile, "consume-consent"), {"token_id": token_id}
        )
        return self._parse(lambda: ConsumeConsentResponse.from_payload(data, profile))

    # ── Token lifecycle ──

    async def renew_token(self, user_id: int, profile: BrokerProfile) -> RenewTokenResponse:
        # The backend resolves both values from its own store
        body = {"access_token": "", profile.client_id_field: ""}
        data = await self._request("POST", self._path(user_id, profile, "renew-token"), body)
        return self._parse(lambda: RenewTokenResponse.model_validate(data))

    # ── Plumbing ──

    @staticmethod
    def _path(user_id: int, profile: BrokerProfile, action: str) -> str:
        return f"/users/{user_id}/{profile.path_segment}/{action}"

    @staticmethod
    def _parse(build: Callable[[], T]) -> T:
        try:
            return build()
        except ValidationError as e:
            logger.warning(f"Unexpected payload from journal backend: {e}")
            raise JournalApiError("Unexpected response from journal backend")

    async def _request(self, method: str, path: str, body: dict | None = None) -> dict[str, Any]:
        try:
            response = await self._http.request(method, path, json=body)
        except httpx.RequestError as e:
            logger.warning(f"{method} {path} failed: {e!r}")
            raise BackendUnavailableError(str(e) or None)

        logger.debug(f"{method} {path} - {response.status_code}")
        if not response.is_success:
            raise JournalApiError(_error_message(response), status_code=response.status_code)

        try:
            payload = response.json()
        except ValueError:
            raise JournalApiError(
                "Invalid JSON from journal backend", status_code=response.status_code
            )
        data = payload.get("data") if isinstance(payload, dict) else None
        return data if isinstance(data, dict) else {}
