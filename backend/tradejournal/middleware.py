import time
import logging
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from slowapi import Limiter
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.responses import JSONResponse
from tradejournal.config import get_settings

logger = logging.getLogger(__name__)


def rate_limit_key(request: Request) -> str:
    """Limit per journal user when the client names one, else per address."""
    user_id = request.headers.get("x-user-id")
    if user_id:
        return f"user:{user_id}"
    return get_remote_address(request)


limiter = Limiter(key_func=rate_limit_key, default_limits=[get_settings().rate_limit])


def setup_middleware(app: FastAPI):
    settings = get_settings()

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin_list,
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["Content-Type", "X-User-Id"],
    )

    # Rate limiting; consent and token calls hit the broker behind the backend
    app.state.limiter = limiter
    app.add_middleware(SlowAPIMiddleware)

    @app.exception_handler(RateLimitExceeded)
    async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
        return JSONResponse(
            status_code=429,
            content={"detail": "Too many requests. Please slow down."},
        )

    # Request logging; bodies carry broker secrets and are never logged
    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        start_time = time.time()
        response = await call_next(request)
        duration = time.time() - start_time
        user = request.headers.get("x-user-id") or settings.default_user_id
        logger.info(
            f"{request.method} {request.url.path} user={user} - {response.status_code} - {duration:.3f}s"
        )
        return response
