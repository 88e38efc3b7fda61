"""Consent handshake: login URL, external login, token id exchange."""

import logging

from tradejournal.exceptions import LinkValidationError, PopupBlockedError
from tradejournal.integrations.journal_api import JournalApiClient
from tradejournal.linking.brokers import BrokerProfile
from tradejournal.linking.state import PendingConsent, extract_token_id
from tradejournal.linking.surfaces import LoginSurface
from tradejournal.schemas.broker import ConsumeConsentResponse

logger = logging.getLogger(__name__)


class ConsentCoordinator:
    def __init__(self, api: JournalApiClient, user_id: int, surface: LoginSurface):
        self._api = api
        self._user_id = user_id
        self._surface = surface

    async def start(self, profile: BrokerProfile) -> PendingConsent:
        """Generate a consent and open the broker login page.

        The broker redirects to a page carrying the token id in its query
        string; the user copies it back by hand, so this returns as soon as
        the page is open.
        """
        consent = await self._api.generate_consent(self._user_id, profile)
        handle = self._surface.open(
            consent.login_url,
            profile.window_name,
            profile.window_width,
            profile.window_height,
        )
        if handle is None:
            raise PopupBlockedError()

        logger.info(f"{profile.display_name} login opened for user {self._user_id}")
        return PendingConsent(login_url=consent.login_url, consent_app_id=consent.consent_app_id)

    async def complete(self, profile: BrokerProfile, raw_token: str) -> ConsumeConsentResponse:
        token_id = extract_token_id(raw_token, profile)
        if not token_id:
            raise LinkValidationError(
                f"Please enter the {profile.token_param} from the redirect URL"
            )
        result = await self._api.consume_consent(self._user_id, profile, token_id)
        logger.info(f"{profile.display_name} consent consumed for user {self._user_id}")
        return result
