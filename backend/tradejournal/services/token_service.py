from datetime import datetime, timedelta, timezone

from tradejournal.core.timezone import ensure_utc
from tradejournal.integrations.journal_api import JournalApiClient
from tradejournal.linking.brokers import BrokerProfile
from tradejournal.schemas.broker import RenewTokenResponse


def expires_within(
    expiry: datetime | None, window: timedelta, now: datetime | None = None
) -> bool:
    """True when the token is already expired or will be within `window`."""
    if expiry is None:
        return False
    now = now or datetime.now(timezone.utc)
    return ensure_utc(expiry) - ensure_utc(now) <= window


class TokenLifecycleManager:
    """Renews access tokens on request. Nothing here runs on a timer."""

    def __init__(self, api: JournalApiClient, user_id: int):
        self._api = api
        self._user_id = user_id

    async def renew(self, profile: BrokerProfile) -> RenewTokenResponse:
        return await self._api.renew_token(self._user_id, profile)
