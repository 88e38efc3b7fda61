from fastapi import Depends, Header, Request
from tradejournal.config import get_settings
from tradejournal.exceptions import UnauthorizedException
from tradejournal.integrations.journal_api import JournalApiClient
from tradejournal.services.accounts_service import AccountLinker, linker_registry


def get_journal_api(request: Request) -> JournalApiClient:
    return request.app.state.journal_api


async def get_current_user_id(x_user_id: int | None = Header(None)) -> int:
    # No auth layer yet: the journal runs single-user unless a header says otherwise
    if x_user_id is None:
        return get_settings().default_user_id
    if x_user_id <= 0:
        raise UnauthorizedException("Invalid user id")
    return x_user_id


async def get_account_linker(
    user_id: int = Depends(get_current_user_id),
    api: JournalApiClient = Depends(get_journal_api),
) -> AccountLinker:
    return linker_registry.get(api, user_id)
