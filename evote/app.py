"""
E-Vote API: account registration with email OTP, election administration,
and one-ballot-per-voter vote casting with live tallies.

Endpoint groups (mounted under API_PREFIX, default /api):
  1. /auth         register, verify-otp, login, me
  2. /elections    list, get, create / update / delete (admin), results
  3. /votes        cast, history, check

Process-wide resources (database pool, mail transport) are opened in the
lifespan and closed on shutdown.  ``create_app`` accepts ready-made
replacements so tests can run without PostgreSQL or SMTP.
"""
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Callable

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import auth_service, election_service, voting_service
from .config import Settings, configure_logging
from .database import Database
from .email_util import Mailer
from .errors import EVoteError
from .schemas import HealthResponse
from .security import utcnow
from .store import PostgresStore
from .voting import VoteCaster

logger = logging.getLogger(__name__)


def _validation_message(exc: RequestValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
        msg = err.get("msg", "invalid value")
        parts.append(f"{loc}: {msg}" if loc else msg)
    return "; ".join(parts) or "Invalid request"


def create_app(settings: Settings | None = None, *, store=None, mailer=None,
               clock: Callable[[], datetime] = utcnow) -> FastAPI:
    settings = settings or Settings.from_env()
    configure_logging(settings.log_level)

    @asynccontextmanager
    async def lifespan(application: FastAPI):
        state = application.state
        if state.store is None:
            state.store = PostgresStore(Database(settings))
        if state.mailer is None:
            state.mailer = Mailer(settings)
        await state.store.open()
        state.vote_caster = VoteCaster(state.store, clock=clock)
        logger.info("E-Vote API started")
        yield
        await state.mailer.close()
        await state.store.close()
        logger.info("E-Vote API stopped")

    app = FastAPI(
        title="E-Vote API",
        description="Email-verified accounts, election administration and single-ballot voting",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.store = store
    app.state.mailer = mailer
    app.state.vote_caster = VoteCaster(store, clock=clock) if store is not None else None

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # -- Error mapping ----------------------------------------------------------

    @app.exception_handler(EVoteError)
    async def evote_error_handler(request: Request, exc: EVoteError):
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.detail}",
                         exc_info=exc.__cause__)
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(status_code=400, content={"detail": _validation_message(exc)})

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception):
        logger.exception(f"Unhandled error on {request.method} {request.url.path}")
        return JSONResponse(status_code=500, content={"detail": "Server error"})

    # -- Routes -----------------------------------------------------------------

    @app.get("/")
    async def root():
        return {"message": "E-Voting API Server Running"}

    @app.get("/health", response_model=HealthResponse)
    async def health():
        return {"status": "healthy", "service": "evote"}

    prefix = settings.api_prefix
    app.include_router(auth_service.router, prefix=prefix)
    app.include_router(election_service.router, prefix=prefix)
    app.include_router(voting_service.router, prefix=prefix)

    return app
