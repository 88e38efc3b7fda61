import logging
from datetime import datetime
from typing import Any, Mapping

from pydantic import BaseModel, SecretStr, field_validator, model_validator

from tradejournal.core.timezone import ensure_utc
from tradejournal.linking.brokers import BrokerProfile

logger = logging.getLogger(__name__)


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str) and not value.strip():
        return None
    return value


def _parse_expiry(value: Any) -> datetime | None:
    value = _blank_to_none(value)
    if value is None:
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)
    try:
        return ensure_utc(datetime.fromisoformat(str(value).replace("Z", "+00:00")))
    except ValueError:
        logger.warning(f"Ignoring unparseable expiry_time from backend: {value!r}")
        return None


def _pick(data: Mapping[str, Any], **fields: str) -> dict[str, Any]:
    """Map backend keys onto model fields, dropping keys the backend left out."""
    picked = {name: data.get(key) for name, key in fields.items()}
    return {name: value for name, value in picked.items() if value is not None}


# --- Journal backend payloads ---

class BrokerConfig(BaseModel):
    configured: bool = False
    has_credentials: bool = False
    client_id: str | None = None
    client_name: str | None = None
    expiry_time: datetime | None = None

    @field_validator("client_id", "client_name", mode="before")
    @classmethod
    def blank_ids_to_none(cls, value):
        return _blank_to_none(value)

    @field_validator("expiry_time", mode="before")
    @classmethod
    def parse_expiry_time(cls, value):
        return _parse_expiry(value)

    @model_validator(mode="after")
    def configured_implies_credentials(self):
        if self.configured:
            self.has_credentials = True
        return self

    @classmethod
    def from_payload(cls, data: Mapping[str, Any], profile: BrokerProfile) -> "BrokerConfig":
        return cls.model_validate(_pick(
            data,
            configured="configured",
            has_credentials="has_credentials",
            client_id=profile.client_id_field,
            client_name=profile.client_name_field,
            expiry_time="expiry_time",
        ))


class SaveCredentialsResult(BaseModel):
    configured: bool = False


class ConsentResponse(BaseModel):
    login_url: str
    consent_app_id: str | None = None
    consent_app_status: str | None = None
    status: str | None = None

    @field_validator("login_url")
    @classmethod
    def login_url_required(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("login_url is empty")
        return value.strip()


class ConsumeConsentResponse(BaseModel):
    client_id: str | None = None
    client_name: str | None = None
    client_ucc: str | None = None
    given_power_of_attorney: bool = False
    access_token: SecretStr | None = None
    expiry_time: datetime | None = None

    @field_validator("client_id", "client_name", "client_ucc", mode="before")
    @classmethod
    def blank_ids_to_none(cls, value):
        return _blank_to_none(value)

    @field_validator("expiry_time", mode="before")
    @classmethod
    def parse_expiry_time(cls, value):
        return _parse_expiry(value)

    @classmethod
    def from_payload(cls, data: Mapping[str, Any], profile: BrokerProfile) -> "ConsumeConsentResponse":
        return cls.model_validate(_pick(
            data,
            client_id=profile.client_id_field,
            client_name=profile.client_name_field,
            client_ucc=profile.client_ucc_field,
            given_power_of_attorney="given_power_of_attorney",
            access_token="access_token",
            expiry_time="expiry_time",
        ))


class RenewTokenResponse(BaseModel):
    status: str | None = None
    access_token: SecretStr | None = None
    expiry_time: datetime | None = None

    @field_validator("expiry_time", mode="before")
    @classmethod
    def parse_expiry_time(cls, value):
        return _parse_expiry(value)


# --- Accounts API ---

class SaveCredentialsRequest(BaseModel):
    # Emptiness is checked by the linker so the message lands in the banner
    api_key: str = ""
    api_secret: str = ""
    client_id: str = ""


class ConsumeConsentRequest(BaseModel):
    token_id: str = ""


class PendingConsentView(BaseModel):
    login_url: str
    consent_app_id: str | None = None
    window_name: str
    window_width: int
    window_height: int
    token_param: str


class BrokerLinkView(BaseModel):
    broker: str
    display_name: str
    phase: str
    configured: bool
    has_credentials: bool
    client_id: str | None = None
    client_name: str | None = None
    token_expiry: datetime | None = None
    renewal_due: bool = False
    awaiting_token: bool = False
    pending_consent: PendingConsentView | None = None
    busy: str | None = None
    error: str | None = None
