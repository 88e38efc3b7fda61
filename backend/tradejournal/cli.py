from __future__ import annotations

import argparse
import asyncio
import getpass
import logging
import sys
from datetime import timedelta

from tradejournal.config import get_settings
from tradejournal.core.timezone import format_ist
from tradejournal.integrations.journal_api import JournalApiClient
from tradejournal.linking.brokers import Broker, get_profile
from tradejournal.linking.surfaces import BrowserLoginSurface, LoginSurface
from tradejournal.schemas.broker import BrokerLinkView
from tradejournal.services.accounts_service import AccountLinker

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def main(argv: list[str] | None = None) -> int:
    settings = get_settings()
    parser = argparse.ArgumentParser(description="Connect broker accounts to the trade journal.")
    parser.add_argument(
        "--broker", type=str, default=Broker.DHAN.value,
        choices=[b.value for b in Broker], help="Broker to act on.",
    )
    parser.add_argument("--user-id", type=int, default=settings.default_user_id, help="Journal user id.")
    parser.add_argument("--api-url", type=str, default=settings.journal_api_url, help="Journal backend base URL.")
    parser.add_argument("--verbose", action="store_true", help="Log debug output.")
    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("status", help="Show the connection status.")
    sub.add_parser("connect", help="Save credentials and complete broker login.")
    sub.add_parser("renew", help="Renew the broker access token.")
    serve = sub.add_parser("serve", help="Run the accounts web API.")
    serve.add_argument("--host", type=str, default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)
    serve.add_argument("--reload", action="store_true")
    args = parser.parse_args(argv)

    if args.command == "serve":
        import uvicorn

        # tradejournal.main configures INFO logging on import unless this runs first
        if args.verbose:
            logging.basicConfig(level=logging.DEBUG, format=LOG_FORMAT)

        uvicorn.run("tradejournal.main:app", host=args.host, port=args.port, reload=args.reload)
        return 0

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING, format=LOG_FORMAT)
    broker = Broker(args.broker)
    api = JournalApiClient(args.api_url, timeout=settings.journal_api_timeout_seconds)
    return asyncio.run(_run(args.command, broker, args.user_id, api, BrowserLoginSurface()))


async def _run(
    command: str,
    broker: Broker,
    user_id: int,
    api: JournalApiClient,
    surface: LoginSurface,
    prompt=input,
    secret_prompt=getpass.getpass,
) -> int:
    settings = get_settings()
    linker = AccountLinker(
        api,
        user_id,
        brokers=[broker],
        surface=surface,
        renewal_window=timedelta(minutes=settings.renewal_warning_minutes),
    )
    try:
        view = await linker.refresh(broker)
        if view.error:
            return _fail(view)

        if command == "status":
            _print_view(view)
            return 0

        if command == "renew":
            view = await linker.renew_token(broker)
            if view.error:
                return _fail(view)
            _print_view(view)
            return 0

        return await _connect(linker, broker, view, prompt, secret_prompt)
    finally:
        await api.aclose()


async def _connect(linker: AccountLinker, broker: Broker, view: BrokerLinkView, prompt, secret_prompt) -> int:
    profile = get_profile(broker)
    if view.phase == "complete":
        print(f"{profile.display_name} is already connected.")
        _print_view(view)
        return 0

    if view.phase == "credentials":
        view = await linker.save_credentials(
            broker,
            api_key=prompt("API Key: "),
            api_secret=secret_prompt("API Secret: "),
            client_id=prompt(f"{profile.display_name} Client ID: "),
        )
        if view.error:
            return _fail(view)

    view = await linker.start_authentication(broker)
    if view.error:
        return _fail(view)
    print(f"Log in to {profile.display_name} in the browser window that just opened.")
    print(f"If it did not open, visit: {view.pending_consent.login_url}")
    print(f"After login, copy the {profile.token_param} from the redirect URL (or the whole URL).")

    view = await linker.complete_authentication(broker, prompt(f"{profile.token_param}: "))
    if view.error:
        return _fail(view)
    _print_view(view)
    return 0


def _fail(view: BrokerLinkView) -> int:
    print(f"Error: {view.error}", file=sys.stderr)
    return 1


def _print_view(view: BrokerLinkView) -> None:
    status = "Configured" if view.configured else "Not Configured"
    print(f"{view.display_name}: {status} (step: {view.phase})")
    if view.client_id:
        name = f" - {view.client_name}" if view.client_name else ""
        print(f"  Client ID: {view.client_id}{name}")
    if view.token_expiry:
        print(f"  Token expires: {format_ist(view.token_expiry)}")
        if view.renewal_due:
            print("  Token expires soon; run `renew` to extend it.")


if __name__ == "__main__":
    raise SystemExit(main())
