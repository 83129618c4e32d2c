"""
Wagering games.

Each play runs validate -> draw -> settle -> audit in one call. Settlement
(balance check plus delta) is a single ledger transaction; the audit record
is written afterwards by a background task and never affects the outcome.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Any

from coinbot.core.results import Err, ErrorKind, Ok, PersistenceError, Result
from coinbot.core.settings import Settings
from coinbot.db import utcnow
from coinbot.models.game import GameEvent
from coinbot.services.balance_service import BalanceService
from coinbot.services.ledger_store import LedgerStore
from coinbot.services.rate_limiter import RateLimiter
from coinbot.services.secure_random import BLACK, RED, SecureRandomSource

logger = logging.getLogger(__name__)

ROULETTE = "roulette"
GUESS = "guess"


@dataclass(frozen=True)
class RouletteResult:
    choice: str
    result: str
    won: bool
    delta: int
    new_balance: int


@dataclass(frozen=True)
class GuessResult:
    guess: int
    secret: int
    won: bool
    delta: int
    new_balance: int


@dataclass(frozen=True)
class GameStats:
    game_count: int
    wins: int
    total_bet: int
    total_won: int


class _SettlementRefused(Exception):
    def __init__(self, err: Err):
        super().__init__(err.message)
        self.err = err


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


class GameEngine:
    def __init__(
        self,
        store: LedgerStore,
        balances: BalanceService,
        limiter: RateLimiter,
        rng: SecureRandomSource,
        settings: Settings,
    ):
        self.store = store
        self.balances = balances
        self.limiter = limiter
        self.rng = rng
        self.settings = settings
        self._audit_tasks: set[asyncio.Task] = set()

    # --- roulette ---

    async def roulette(self, user_id: str, bet: int, choice: str) -> Result[RouletteResult]:
        s = self.settings
        allowed = self.limiter.check_and_record(user_id, ROULETTE, s.ROULETTE_RATE_ATTEMPTS, s.ROULETTE_RATE_WINDOW_MINUTES)
        if not allowed.ok:
            return allowed

        invalid = self._validate_bet(bet)
        if invalid:
            return invalid

        choice = choice.lower() if isinstance(choice, str) else ""
        if choice not in (RED, BLACK):
            return Err(ErrorKind.VALIDATION, 'Please choose either "red" or "black"')

        try:
            async with self.store.transaction() as session:
                user = await self.store.ensure_user(session, user_id, for_update=True)
                if bet > user.coins:
                    return Err(ErrorKind.INSUFFICIENT_BALANCE, "Insufficient balance")

                result = self.rng.binary_choice()
                won = result == choice
                delta = bet * (s.ROULETTE_MULTIPLIER - 1) if won else -bet
                settled = await self.balances.apply_delta_in(session, user_id, delta)
                if not settled.ok:
                    raise _SettlementRefused(settled)
        except _SettlementRefused as exc:
            return exc.err
        except PersistenceError:
            logger.exception("roulette settlement failed for %s", user_id)
            return Err(ErrorKind.PERSISTENCE, "An error occurred while playing roulette")

        self._schedule_audit(
            user_id,
            ROULETTE,
            bet_amount=bet,
            win_amount=bet * s.ROULETTE_MULTIPLIER if won else 0,
            game_data={"choice": choice, "result": result, "won": won},
        )
        return Ok(RouletteResult(choice=choice, result=result, won=won, delta=delta, new_balance=settled.value))

    def _validate_bet(self, bet: Any) -> Err | None:
        s = self.settings
        if not _is_int(bet) or bet <= 0:
            return Err(ErrorKind.VALIDATION, "Bet amount must be a positive integer")
        if bet < s.ROULETTE_MIN_BET:
            return Err(ErrorKind.VALIDATION, f"Minimum bet is {s.ROULETTE_MIN_BET} coins")
        if bet > s.ROULETTE_MAX_BET:
            return Err(ErrorKind.VALIDATION, f"Maximum bet is {s.ROULETTE_MAX_BET} coins")
        return None

    # --- number guess ---

    async def guess(self, user_id: str, guess: int) -> Result[GuessResult]:
        s = self.settings
        allowed = self.limiter.check_and_record(user_id, GUESS, s.GUESS_RATE_ATTEMPTS, s.GUESS_RATE_WINDOW_MINUTES)
        if not allowed.ok:
            return allowed

        if not _is_int(guess) or not s.GUESS_MIN_NUMBER <= guess <= s.GUESS_MAX_NUMBER:
            return Err(
                ErrorKind.VALIDATION,
                f"Guess must be a number between {s.GUESS_MIN_NUMBER} and {s.GUESS_MAX_NUMBER}",
            )

        try:
            async with self.store.transaction() as session:
                user = await self.store.ensure_user(session, user_id, for_update=True)
                if user.coins < s.GUESS_LOSS_PENALTY:
                    return Err(
                        ErrorKind.INSUFFICIENT_BALANCE,
                        f"You need at least {s.GUESS_LOSS_PENALTY} coins to play",
                    )

                secret = self.rng.uniform_int(s.GUESS_MIN_NUMBER, s.GUESS_MAX_NUMBER)
                won = guess == secret
                delta = s.GUESS_WIN_REWARD if won else -s.GUESS_LOSS_PENALTY
                settled = await self.balances.apply_delta_in(session, user_id, delta)
                if not settled.ok:
                    raise _SettlementRefused(settled)
        except _SettlementRefused as exc:
            return exc.err
        except PersistenceError:
            logger.exception("guess settlement failed for %s", user_id)
            return Err(ErrorKind.PERSISTENCE, "An error occurred while playing the guessing game")

        self._schedule_audit(
            user_id,
            GUESS,
            bet_amount=s.GUESS_LOSS_PENALTY,
            win_amount=s.GUESS_WIN_REWARD if won else 0,
            game_data={"guess": guess, "secret": secret, "won": won},
        )
        return Ok(GuessResult(guess=guess, secret=secret, won=won, delta=delta, new_balance=settled.value))

    # --- audit log ---

    def _schedule_audit(self, user_id: str, game_type: str, bet_amount: int, win_amount: int, game_data: dict) -> None:
        task = asyncio.create_task(self._write_audit(user_id, game_type, bet_amount, win_amount, game_data))
        self._audit_tasks.add(task)
        task.add_done_callback(self._audit_tasks.discard)

    async def _write_audit(self, user_id: str, game_type: str, bet_amount: int, win_amount: int, game_data: dict) -> None:
        try:
            async with self.store.transaction() as session:
                await self.store.append_game_event(session, user_id, game_type, bet_amount, win_amount, game_data)
        except Exception:
            # the game is already settled; a lost audit row must not surface to the player
            logger.exception("failed to record %s history for %s", game_type, user_id)

    async def drain_audit(self) -> None:
        """Wait for pending audit writes."""
        while self._audit_tasks:
            await asyncio.gather(*list(self._audit_tasks))

    # --- reporting ---

    async def stats(self, user_id: str, hours: int = 24) -> GameStats:
        since = utcnow() - timedelta(hours=hours)
        async with self.store.transaction() as session:
            row = await self.store.game_stats(session, user_id, since)
        return GameStats(**row)

    async def history(self, user_id: str, limit: int = 10) -> list[GameEvent]:
        async with self.store.transaction() as session:
            return await self.store.recent_games(session, user_id, limit=limit)
