import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from tradejournal import __version__
from tradejournal.api.router import api_router
from tradejournal.middleware import setup_middleware
from tradejournal.config import get_settings
from tradejournal.exceptions import TradeJournalError
from tradejournal.integrations.journal_api import JournalApiClient

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    logger.info(f"Starting {settings.app_name} in {settings.app_env} mode")
    logger.info(f"Journal backend at {settings.journal_api_url}")
    app.state.journal_api = JournalApiClient.from_settings()
    yield
    logger.info("Shutting down...")
    await app.state.journal_api.aclose()


app = FastAPI(
    title="Trade Journal Accounts API",
    description="Broker account linking for the trading journal",
    version=__version__,
    lifespan=lifespan,
)

setup_middleware(app)
app.include_router(api_router)


@app.exception_handler(TradeJournalError)
async def trade_journal_exception_handler(request: Request, exc: TradeJournalError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(
        f"Unhandled exception on {request.method} {request.url.path}: {exc}",
        exc_info=True,
    )
    return JSONResponse(
        status_code=500,
        content={"detail": "An unexpected error occurred. Please try again later."},
    )


@app.get("/health")
async def health_check():
    return {"status": "healthy", "version": __version__}
