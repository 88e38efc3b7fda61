from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from urllib.parse import parse_qs, urlsplit

from tradejournal.linking.brokers import Broker, BrokerProfile
from tradejournal.schemas.broker import BrokerConfig


class Phase(str, Enum):
    CREDENTIALS = "credentials"
    OAUTH = "oauth"
    COMPLETE = "complete"


@dataclass
class PendingConsent:
    """Login URL handed out by the backend, waiting for the user's token id."""

    login_url: str
    consent_app_id: str | None = None


@dataclass
class CredentialForm:
    api_key: str = ""
    api_secret: str = ""
    client_id: str = ""
    token_id: str = ""

    def clear_credentials(self) -> None:
        self.api_key = ""
        self.api_secret = ""
        self.client_id = ""

    def clear(self) -> None:
        self.clear_credentials()
        self.token_id = ""


@dataclass
class BrokerLinkState:
    broker: Broker
    phase: Phase = Phase.CREDENTIALS
    configured: bool = False
    has_credentials: bool = False
    client_id: str | None = None
    client_name: str | None = None
    access_token_expiry: datetime | None = None
    pending_consent: PendingConsent | None = field(default=None, repr=False)

    @property
    def awaiting_token(self) -> bool:
        return self.phase == Phase.OAUTH and self.pending_consent is not None

    def is_consistent(self) -> bool:
        if self.phase == Phase.COMPLETE:
            return bool(self.client_id) and self.has_credentials
        if self.phase == Phase.OAUTH:
            return self.has_credentials and bool(self.client_id)
        return True

    def apply_config(self, config: BrokerConfig) -> None:
        self.configured = config.configured
        self.has_credentials = config.has_credentials
        self.client_id = config.client_id
        self.client_name = config.client_name
        self.access_token_expiry = config.expiry_time


def derive_phase(config: BrokerConfig) -> Phase:
    """Phase implied by the backend's view of the broker connection."""
    if config.configured and config.client_id:
        return Phase.COMPLETE
    if not config.has_credentials or not config.client_id:
        return Phase.CREDENTIALS
    # Credentials and client id stored, consent not completed yet
    return Phase.OAUTH


def extract_token_id(raw: str, profile: BrokerProfile) -> str:
    """Accept either a bare token id or the full redirect URL the broker sent the user to."""
    value = (raw or "").strip()
    if "?" not in value and "#" not in value and "://" not in value:
        return value

    parts = urlsplit(value)
    for query in (parts.query, parts.fragment):
        values = parse_qs(query).get(profile.token_param)
        if values and values[0].strip():
            return values[0].strip()
    return ""
