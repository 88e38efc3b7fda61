from fastapi import APIRouter, Depends, Query
from tradejournal.dependencies import get_account_linker
from tradejournal.linking.brokers import Broker
from tradejournal.schemas.broker import BrokerLinkView, ConsumeConsentRequest, SaveCredentialsRequest
from tradejournal.services.accounts_service import AccountLinker

router = APIRouter(prefix="/accounts", tags=["Accounts"])


@router.get("", response_model=list[BrokerLinkView])
async def list_accounts(linker: AccountLinker = Depends(get_account_linker)):
    views = []
    for broker in linker.machine.brokers:
        if linker.is_loaded(broker):
            views.append(linker.view(broker))
        else:
            views.append(await linker.refresh(broker))
    return views


@router.get("/{broker}", response_model=BrokerLinkView)
async def get_account(
    broker: Broker,
    refresh: bool = Query(False, description="Re-read configuration from the journal backend"),
    linker: AccountLinker = Depends(get_account_linker),
):
    if refresh or not linker.is_loaded(broker):
        return await linker.refresh(broker)
    return linker.view(broker)


@router.post("/{broker}/credentials", response_model=BrokerLinkView)
async def save_credentials(
    broker: Broker,
    data: SaveCredentialsRequest,
    linker: AccountLinker = Depends(get_account_linker),
):
    """Store API key, secret and client id; moves the broker to the OAuth step."""
    return await linker.save_credentials(broker, data.api_key, data.api_secret, data.client_id)


@router.post("/{broker}/consent", response_model=BrokerLinkView)
async def start_authentication(
    broker: Broker,
    linker: AccountLinker = Depends(get_account_linker),
):
    """Generate a consent; the returned view carries the login URL to open."""
    return await linker.start_authentication(broker)


@router.post("/{broker}/consent/complete", response_model=BrokerLinkView)
async def complete_authentication(
    broker: Broker,
    data: ConsumeConsentRequest,
    linker: AccountLinker = Depends(get_account_linker),
):
    """Exchange the token id (or the whole redirect URL) for an access token."""
    return await linker.complete_authentication(broker, data.token_id)


@router.post("/{broker}/back", response_model=BrokerLinkView)
async def back_to_credentials(
    broker: Broker,
    linker: AccountLinker = Depends(get_account_linker),
):
    return linker.back_to_credentials(broker)


@router.post("/{broker}/renew", response_model=BrokerLinkView)
async def renew_token(
    broker: Broker,
    linker: AccountLinker = Depends(get_account_linker),
):
    return await linker.renew_token(broker)


@router.post("/{broker}/disconnect", response_model=BrokerLinkView)
async def disconnect(
    broker: Broker,
    linker: AccountLinker = Depends(get_account_linker),
):
    return linker.disconnect(broker)
