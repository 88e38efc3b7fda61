from tradejournal.exceptions import LinkValidationError
from tradejournal.integrations.journal_api import JournalApiClient
from tradejournal.linking.brokers import BrokerProfile
from tradejournal.schemas.broker import BrokerConfig, SaveCredentialsResult


def _join_labels(labels: list[str]) -> str:
    if len(labels) <= 2:
        return " and ".join(labels)
    return ", ".join(labels[:-1]) + f", and {labels[-1]}"


class CredentialStore:
    """Saves and reads a user's broker API credentials through the journal backend."""

    def __init__(self, api: JournalApiClient, user_id: int):
        self._api = api
        self._user_id = user_id

    async def get_config(self, profile: BrokerProfile) -> BrokerConfig:
        return await self._api.get_config(self._user_id, profile)

    async def save_credentials(
        self, profile: BrokerProfile, api_key: str, api_secret: str, client_id: str
    ) -> SaveCredentialsResult:
        values = {
            "API Key": (api_key or "").strip(),
            "API Secret": (api_secret or "").strip(),
            f"{profile.display_name} Client ID": (client_id or "").strip(),
        }
        missing = [label for label, value in values.items() if not value]
        if missing:
            raise LinkValidationError(f"Please enter {_join_labels(missing)}")

        api_key, api_secret, client_id = values.values()
        return await self._api.save_credentials(
            self._user_id, profile, api_key, api_secret, client_id
        )
