"""Broker descriptors for the linking flow."""

from dataclasses import dataclass
from enum import Enum

from tradejournal.exceptions import NotFoundException


class Broker(str, Enum):
    DHAN = "dhan"
    ZERODHA = "zerodha"


@dataclass(frozen=True)
class BrokerProfile:
    broker: Broker
    display_name: str
    path_segment: str
    field_prefix: str
    token_param: str
    window_width: int = 600
    window_height: int = 700

    @property
    def client_id_field(self) -> str:
        return f"{self.field_prefix}_client_id"

    @property
    def client_name_field(self) -> str:
        return f"{self.field_prefix}_client_name"

    @property
    def client_ucc_field(self) -> str:
        return f"{self.field_prefix}_client_ucc"

    @property
    def window_name(self) -> str:
        return f"{self.display_name} Login"


PROFILES: dict[Broker, BrokerProfile] = {
    Broker.DHAN: BrokerProfile(
        broker=Broker.DHAN,
        display_name="Dhan",
        path_segment="dhan",
        field_prefix="dhan",
        token_param="tokenId",
    ),
    # Kite Connect redirects with ?request_token=...&action=login&status=success
    Broker.ZERODHA: BrokerProfile(
        broker=Broker.ZERODHA,
        display_name="Zerodha",
        path_segment="zerodha",
        field_prefix="zerodha",
        token_param="request_token",
    ),
}


def get_profile(broker: Broker | str) -> BrokerProfile:
    try:
        return PROFILES[Broker(broker.lower())]
    except (KeyError, ValueError, AttributeError):
        raise NotFoundException(f"Unknown broker: {broker}")
