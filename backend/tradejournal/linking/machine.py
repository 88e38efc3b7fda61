"""Per-broker phase tracking for the account linking flow.

Legal transitions:

    CREDENTIALS --save_credentials--> OAUTH
    OAUTH       --start_auth--------> OAUTH      (pending consent recorded)
    OAUTH       --consume_consent---> COMPLETE
    OAUTH       --back--------------> CREDENTIALS
    COMPLETE    --renew_token-------> COMPLETE
    COMPLETE    --disconnect--------> CREDENTIALS

Anything else raises InvalidTransitionError. The backend's configuration is
authoritative: ``reconcile`` re-derives the phase after every mutation.
"""

import logging
from datetime import datetime
from enum import Enum
from typing import Iterable

from tradejournal.exceptions import InvalidTransitionError, NotFoundException
from tradejournal.linking.brokers import Broker
from tradejournal.linking.state import BrokerLinkState, PendingConsent, Phase, derive_phase
from tradejournal.schemas.broker import BrokerConfig, ConsumeConsentResponse

logger = logging.getLogger(__name__)


class LinkEvent(str, Enum):
    SAVE_CREDENTIALS = "save_credentials"
    START_AUTH = "start_auth"
    CONSUME_CONSENT = "consume_consent"
    BACK = "back"
    RENEW_TOKEN = "renew_token"
    DISCONNECT = "disconnect"


TRANSITIONS: dict[tuple[Phase, LinkEvent], Phase] = {
    (Phase.CREDENTIALS, LinkEvent.SAVE_CREDENTIALS): Phase.OAUTH,
    (Phase.OAUTH, LinkEvent.START_AUTH): Phase.OAUTH,
    (Phase.OAUTH, LinkEvent.CONSUME_CONSENT): Phase.COMPLETE,
    (Phase.OAUTH, LinkEvent.BACK): Phase.CREDENTIALS,
    (Phase.COMPLETE, LinkEvent.RENEW_TOKEN): Phase.COMPLETE,
    (Phase.COMPLETE, LinkEvent.DISCONNECT): Phase.CREDENTIALS,
}

EVENT_HINTS = {
    LinkEvent.SAVE_CREDENTIALS: "Credentials are already saved",
    LinkEvent.START_AUTH: "Save your API credentials before authenticating",
    LinkEvent.CONSUME_CONSENT: "Start authentication before entering a token id",
    LinkEvent.BACK: "Nothing to go back to",
    LinkEvent.RENEW_TOKEN: "Connect the account before renewing its token",
    LinkEvent.DISCONNECT: "Account is not connected",
}


class LinkingStateMachine:
    """Holds one BrokerLinkState per broker for a single user."""

    def __init__(self, brokers: Iterable[Broker]):
        self._states: dict[Broker, BrokerLinkState] = {
            broker: BrokerLinkState(broker=broker) for broker in brokers
        }

    @property
    def brokers(self) -> list[Broker]:
        return list(self._states)

    def state(self, broker: Broker) -> BrokerLinkState:
        try:
            return self._states[broker]
        except KeyError:
            raise NotFoundException(f"Broker {broker.value} is not enabled")

    def can(self, broker: Broker, event: LinkEvent) -> bool:
        return (self.state(broker).phase, event) in TRANSITIONS

    def require(self, broker: Broker, event: LinkEvent) -> BrokerLinkState:
        state = self.state(broker)
        if (state.phase, event) not in TRANSITIONS:
            raise InvalidTransitionError(EVENT_HINTS[event])
        return state

    def apply(self, broker: Broker, event: LinkEvent) -> BrokerLinkState:
        state = self.require(broker, event)
        target = TRANSITIONS[(state.phase, event)]
        logger.debug(f"{broker.value}: {state.phase.value} --{event.value}--> {target.value}")
        state.phase = target

        if event == LinkEvent.BACK:
            state.pending_consent = None
        elif event == LinkEvent.DISCONNECT:
            # Local reset only; revoking the session is the backend's job
            state.pending_consent = None
            state.configured = False
            state.client_id = None
            state.client_name = None
            state.access_token_expiry = None
        return state

    def start_auth(self, broker: Broker, pending: PendingConsent) -> BrokerLinkState:
        state = self.apply(broker, LinkEvent.START_AUTH)
        state.pending_consent = pending
        return state

    def complete(self, broker: Broker, result: ConsumeConsentResponse) -> BrokerLinkState:
        state = self.apply(broker, LinkEvent.CONSUME_CONSENT)
        state.pending_consent = None
        state.configured = True
        state.has_credentials = True
        state.client_id = result.client_id or state.client_id
        state.client_name = result.client_name or state.client_name
        state.access_token_expiry = result.expiry_time
        return state

    def record_renewal(self, broker: Broker, expiry: datetime | None) -> BrokerLinkState:
        state = self.apply(broker, LinkEvent.RENEW_TOKEN)
        if expiry is not None:
            state.access_token_expiry = expiry
        return state

    def reconcile(self, broker: Broker, config: BrokerConfig) -> BrokerLinkState:
        state = self.state(broker)
        phase = derive_phase(config)
        if phase != state.phase:
            logger.info(f"{broker.value}: backend reports {phase.value}, was {state.phase.value}")
        state.apply_config(config)
        state.phase = phase
        if phase != Phase.OAUTH:
            state.pending_consent = None
        return state
