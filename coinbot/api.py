from __future__ import annotations

import asyncio
import contextlib
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from coinbot.core.results import PersistenceError
from coinbot.core.settings import Settings, settings as default_settings
from coinbot.routers.commands import router as commands_router
from coinbot.routers.health import router as health_router
from coinbot.routers.users import router as users_router
from coinbot.services.balance_service import BalanceService
from coinbot.services.commands import CommandService
from coinbot.services.game_engine import GameEngine
from coinbot.services.ledger_store import LedgerStore
from coinbot.services.rate_limiter import RateLimiter, SuspiciousActivityTracker, run_sweeper
from coinbot.services.redemption_service import RedemptionService
from coinbot.services.secure_random import SecureRandomSource
from coinbot.services.threat_filter import ThreatFilter

logger = logging.getLogger(__name__)


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or default_settings

    store = LedgerStore(settings.DATABASE_URL, starting_balance=settings.STARTING_BALANCE)
    limiter = RateLimiter(retention_minutes=settings.RATE_LIMIT_RETENTION_MINUTES)
    tracker = SuspiciousActivityTracker(threshold=settings.SUSPICIOUS_ACTIVITY_THRESHOLD)
    threat_filter = ThreatFilter()
    balances = BalanceService(store)
    games = GameEngine(store, balances, limiter, SecureRandomSource(), settings)
    redemptions = RedemptionService(store, balances, limiter, threat_filter, settings)

    @contextlib.asynccontextmanager
    async def lifespan(app: FastAPI):
        await store.init_schema()
        sweeper = asyncio.create_task(run_sweeper(settings.RATE_LIMIT_SWEEP_SECONDS, limiter, tracker))
        logger.info("%s started (database: %s)", settings.APP_NAME, store.dialect)
        try:
            yield
        finally:
            sweeper.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await sweeper
            await games.drain_audit()
            limiter.clear()
            tracker.clear()
            await store.dispose()

    app = FastAPI(title=f"{settings.APP_NAME} - coin economy gateway", lifespan=lifespan)

    app.state.settings = settings
    app.state.store = store
    app.state.limiter = limiter
    app.state.tracker = tracker
    app.state.balances = balances
    app.state.games = games
    app.state.redemptions = redemptions
    app.state.commands = CommandService(threat_filter, tracker, balances, games, redemptions, settings)

    @app.exception_handler(PersistenceError)
    async def _persistence_error(request: Request, exc: PersistenceError):
        logger.error("storage failure on %s: %s", request.url.path, exc)
        return JSONResponse(status_code=503, content={"detail": "persistence_error"})

    app.include_router(health_router)
    app.include_router(commands_router)
    app.include_router(users_router)

    return app
