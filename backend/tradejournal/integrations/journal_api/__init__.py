from tradejournal.integrations.journal_api.client import JournalApiClient

__all__ = ["JournalApiClient"]
