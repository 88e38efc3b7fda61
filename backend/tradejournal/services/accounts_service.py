"""Drives the broker linking flow for one user.

Each user action runs inside ``_operation``: it refuses to start while another
action for the same broker is outstanding, clears the broker's error banner,
and turns any TradeJournalError into the new banner text.
"""

import logging
from collections import OrderedDict
from contextlib import contextmanager
from datetime import timedelta
from enum import Enum
from typing import Iterable

from tradejournal.config import get_settings
from tradejournal.exceptions import OperationInProgressError, TradeJournalError
from tradejournal.integrations.journal_api import JournalApiClient
from tradejournal.linking.brokers import Broker, get_profile
from tradejournal.linking.machine import LinkEvent, LinkingStateMachine
from tradejournal.linking.state import CredentialForm, Phase
from tradejournal.linking.surfaces import ClientLoginSurface, LoginSurface
from tradejournal.schemas.broker import BrokerLinkView, PendingConsentView
from tradejournal.services.consent_service import ConsentCoordinator
from tradejournal.services.credential_service import CredentialStore
from tradejournal.services.token_service import TokenLifecycleManager, expires_within

logger = logging.getLogger(__name__)


class LinkOperation(str, Enum):
    LOAD = "loading"
    SAVE = "saving"
    AUTHENTICATE = "authenticating"
    RENEW = "renewing"
    NAVIGATE = "navigating"


class AccountLinker:
    def __init__(
        self,
        api: JournalApiClient,
        user_id: int,
        brokers: Iterable[Broker],
        surface: LoginSurface,
        renewal_window: timedelta = timedelta(minutes=60),
        retain_form: bool = True,
    ):
        self.user_id = user_id
        # Interactive clients keep rejected input for correction; stateless ones resend it
        self.retain_form = retain_form
        self.machine = LinkingStateMachine(brokers)
        self.credentials = CredentialStore(api, user_id)
        self.consent = ConsentCoordinator(api, user_id, surface)
        self.tokens = TokenLifecycleManager(api, user_id)
        self.renewal_window = renewal_window
        self._forms = {broker: CredentialForm() for broker in self.machine.brokers}
        self._errors: dict[Broker, str | None] = {broker: None for broker in self.machine.brokers}
        self._busy: dict[Broker, LinkOperation | None] = {broker: None for broker in self.machine.brokers}
        self._loaded: set[Broker] = set()

    def form(self, broker: Broker) -> CredentialForm:
        self.machine.state(broker)
        return self._forms[broker]

    def error(self, broker: Broker) -> str | None:
        return self._errors.get(broker)

    def busy(self, broker: Broker) -> LinkOperation | None:
        return self._busy.get(broker)

    def is_loaded(self, broker: Broker) -> bool:
        return broker in self._loaded

    @contextmanager
    def _operation(self, broker: Broker, op: LinkOperation):
        self.machine.state(broker)
        current = self._busy[broker]
        if current is not None:
            raise OperationInProgressError(
                f"{get_profile(broker).display_name} is busy {current.value}, try again shortly"
            )
        self._busy[broker] = op
        self._errors[broker] = None
        try:
            yield
        except TradeJournalError as e:
            logger.warning(f"{broker.value} {op.value} failed for user {self.user_id}: {e.message}")
            self._errors[broker] = e.message
        finally:
            self._busy[broker] = None

    async def _refetch(self, broker: Broker) -> None:
        """Re-read the backend's configuration; it overrides local transitions."""
        try:
            config = await self.credentials.get_config(get_profile(broker))
        except TradeJournalError as e:
            logger.warning(f"{broker.value} config refresh failed for user {self.user_id}: {e.message}")
            self._errors[broker] = e.message
            return
        self.machine.reconcile(broker, config)
        self._loaded.add(broker)

    # ── Actions ──

    async def refresh(self, broker: Broker) -> BrokerLinkView:
        with self._operation(broker, LinkOperation.LOAD):
            config = await self.credentials.get_config(get_profile(broker))
            self.machine.reconcile(broker, config)
            self._loaded.add(broker)
        return self.view(broker)

    async def load(self) -> list[BrokerLinkView]:
        return [await self.refresh(broker) for broker in self.machine.brokers]

    async def save_credentials(
        self,
        broker: Broker,
        api_key: str | None = None,
        api_secret: str | None = None,
        client_id: str | None = None,
    ) -> BrokerLinkView:
        with self._operation(broker, LinkOperation.SAVE):
            form = self._forms[broker]
            try:
                if api_key is not None:
                    form.api_key = api_key
                if api_secret is not None:
                    form.api_secret = api_secret
                if client_id is not None:
                    form.client_id = client_id
                self.machine.require(broker, LinkEvent.SAVE_CREDENTIALS)
                await self.credentials.save_credentials(
                    get_profile(broker), form.api_key, form.api_secret, form.client_id
                )
                self.machine.apply(broker, LinkEvent.SAVE_CREDENTIALS)
                form.clear_credentials()
            finally:
                if not self.retain_form:
                    form.clear_credentials()
            await self._refetch(broker)
        return self.view(broker)

    async def start_authentication(self, broker: Broker) -> BrokerLinkView:
        with self._operation(broker, LinkOperation.AUTHENTICATE):
            self.machine.require(broker, LinkEvent.START_AUTH)
            pending = await self.consent.start(get_profile(broker))
            self.machine.start_auth(broker, pending)
        return self.view(broker)

    async def complete_authentication(
        self, broker: Broker, token_id: str | None = None
    ) -> BrokerLinkView:
        with self._operation(broker, LinkOperation.AUTHENTICATE):
            form = self._forms[broker]
            try:
                if token_id is not None:
                    form.token_id = token_id
                self.machine.require(broker, LinkEvent.CONSUME_CONSENT)
                result = await self.consent.complete(get_profile(broker), form.token_id)
                self.machine.complete(broker, result)
                form.token_id = ""
            finally:
                if not self.retain_form:
                    form.token_id = ""
            await self._refetch(broker)
        return self.view(broker)

    async def renew_token(self, broker: Broker) -> BrokerLinkView:
        with self._operation(broker, LinkOperation.RENEW):
            self.machine.require(broker, LinkEvent.RENEW_TOKEN)
            result = await self.tokens.renew(get_profile(broker))
            self.machine.record_renewal(broker, result.expiry_time)
            await self._refetch(broker)
        return self.view(broker)

    def back_to_credentials(self, broker: Broker) -> BrokerLinkView:
        with self._operation(broker, LinkOperation.NAVIGATE):
            self.machine.apply(broker, LinkEvent.BACK)
            self._forms[broker].token_id = ""
        return self.view(broker)

    def disconnect(self, broker: Broker) -> BrokerLinkView:
        with self._operation(broker, LinkOperation.NAVIGATE):
            self.machine.apply(broker, LinkEvent.DISCONNECT)
            self._forms[broker].clear()
            logger.info(f"{broker.value} disconnected locally for user {self.user_id}")
        return self.view(broker)

    # ── Presentation ──

    def view(self, broker: Broker) -> BrokerLinkView:
        profile = get_profile(broker)
        state = self.machine.state(broker)
        pending = None
        if state.pending_consent is not None:
            pending = PendingConsentView(
                login_url=state.pending_consent.login_url,
                consent_app_id=state.pending_consent.consent_app_id,
                window_name=profile.window_name,
                window_width=profile.window_width,
                window_height=profile.window_height,
                token_param=profile.token_param,
            )
        busy = self._busy[broker]
        return BrokerLinkView(
            broker=broker.value,
            display_name=profile.display_name,
            phase=state.phase.value,
            configured=state.configured and state.phase == Phase.COMPLETE,
            has_credentials=state.has_credentials,
            client_id=state.client_id,
            client_name=state.client_name,
            token_expiry=state.access_token_expiry,
            renewal_due=(
                state.phase == Phase.COMPLETE
                and expires_within(state.access_token_expiry, self.renewal_window)
            ),
            awaiting_token=state.awaiting_token,
            pending_consent=pending,
            busy=busy.value if busy else None,
            error=self._errors[broker],
        )


class LinkerRegistry:
    """One AccountLinker per user, keeping at most ``max_linkers`` of them.

    The least recently used linker is dropped first. A dropped user only loses
    in-memory progress such as a pending consent URL; the next request reloads
    their phase from the journal backend.
    """

    def __init__(self, max_linkers: int | None = None):
        self._max_linkers = max_linkers
        self._linkers: OrderedDict[int, AccountLinker] = OrderedDict()

    @property
    def max_linkers(self) -> int:
        return self._max_linkers or get_settings().max_cached_linkers

    def __len__(self) -> int:
        return len(self._linkers)

    def __contains__(self, user_id: int) -> bool:
        return user_id in self._linkers

    def get(self, api: JournalApiClient, user_id: int) -> AccountLinker:
        linker = self._linkers.get(user_id)
        if linker is not None:
            self._linkers.move_to_end(user_id)
            return linker

        settings = get_settings()
        linker = AccountLinker(
            api,
            user_id,
            brokers=[get_profile(name).broker for name in settings.enabled_broker_list],
            surface=ClientLoginSurface(),
            renewal_window=timedelta(minutes=settings.renewal_warning_minutes),
            retain_form=False,
        )
        self._linkers[user_id] = linker
        while len(self._linkers) > self.max_linkers:
            evicted, _ = self._linkers.popitem(last=False)
            logger.debug(f"Dropped account linker for user {evicted}")
        return linker

    def clear(self) -> None:
        self._linkers.clear()


# Singleton
linker_registry = LinkerRegistry()
