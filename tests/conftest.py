"""
Shared fixtures: a file-backed SQLite ledger per test, a controllable clock
and a scripted random source so game outcomes are deterministic.
"""
import pytest
import pytest_asyncio

from coinbot.core.settings import Settings
from coinbot.services.balance_service import BalanceService
from coinbot.services.commands import CommandService
from coinbot.services.game_engine import GameEngine
from coinbot.services.ledger_store import LedgerStore
from coinbot.services.rate_limiter import RateLimiter, SuspiciousActivityTracker
from coinbot.services.redemption_service import RedemptionService
from coinbot.services.threat_filter import ThreatFilter

ADMIN_ID = "6281234567890"
PLAYER_ID = "6289876543210"


class FakeClock:
    def __init__(self, start: float = 10_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class ScriptedRandom:
    """Returns queued outcomes in order."""

    def __init__(self, colors=(), numbers=()):
        self.colors = list(colors)
        self.numbers = list(numbers)

    def binary_choice(self) -> str:
        return self.colors.pop(0)

    def uniform_int(self, min_value: int, max_value: int) -> int:
        value = self.numbers.pop(0)
        assert min_value <= value <= max_value
        return value


def make_settings(tmp_path, **overrides) -> Settings:
    values = dict(
        DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}",
        JWT_SECRET="test-secret",
        ISSUERS=[ADMIN_ID],
    )
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def settings(tmp_path):
    return make_settings(tmp_path)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def rng():
    return ScriptedRandom()


@pytest_asyncio.fixture
async def store(settings):
    store = LedgerStore(settings.DATABASE_URL, starting_balance=settings.STARTING_BALANCE)
    await store.init_schema()
    yield store
    await store.dispose()


@pytest.fixture
def limiter(clock):
    return RateLimiter(clock=clock)


@pytest.fixture
def balances(store):
    return BalanceService(store)


@pytest.fixture
def threat_filter():
    return ThreatFilter()


@pytest_asyncio.fixture
async def games(store, balances, limiter, rng, settings):
    engine = GameEngine(store, balances, limiter, rng, settings)
    yield engine
    await engine.drain_audit()


@pytest.fixture
def redemptions(store, balances, limiter, threat_filter, settings):
    return RedemptionService(store, balances, limiter, threat_filter, settings)


@pytest.fixture
def tracker(clock):
    return SuspiciousActivityTracker(threshold=5, clock=clock)


@pytest.fixture
def commands(threat_filter, tracker, balances, games, redemptions, settings):
    return CommandService(threat_filter, tracker, balances, games, redemptions, settings)
