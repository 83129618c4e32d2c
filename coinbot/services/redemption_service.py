"""
Redeem codes: issuing, deactivating and exactly-once consumption.

A claim checks for an earlier redemption, inserts the redemption row and
credits the balance inside one transaction. The (user_id, code) uniqueness
constraint is the final guard: when two claims race, the loser's insert
fails, its transaction rolls back together with the credit, and it is
reported as a duplicate.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from coinbot.core.results import Err, ErrorKind, Ok, PersistenceError, Result
from coinbot.core.settings import Settings
from coinbot.db import utcnow
from coinbot.services.balance_service import BalanceService
from coinbot.services.ledger_store import DuplicateRowError, LedgerStore
from coinbot.services.rate_limiter import RateLimiter
from coinbot.services.threat_filter import ThreatFilter, sanitize

logger = logging.getLogger(__name__)

REDEEM = "redeem"


@dataclass(frozen=True)
class IssuedCode:
    code: str
    coin_value: int
    expires_at: datetime
    created_by: str
    label: str | None


@dataclass(frozen=True)
class Settlement:
    code: str
    coins: int
    new_balance: int


class _ClaimRefused(Exception):
    def __init__(self, err: Err):
        super().__init__(err.message)
        self.err = err


def _positive_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


class RedemptionService:
    def __init__(
        self,
        store: LedgerStore,
        balances: BalanceService,
        limiter: RateLimiter,
        threat_filter: ThreatFilter,
        settings: Settings,
    ):
        self.store = store
        self.balances = balances
        self.limiter = limiter
        self.threat_filter = threat_filter
        self.settings = settings

    async def issue(
        self,
        code: str,
        coin_value: int,
        expires_in_hours: int,
        issuer_id: str,
        label: str | None = None,
    ) -> Result[IssuedCode]:
        valid = self.threat_filter.validate_code_format(code)
        if not valid.ok:
            return valid
        if not _positive_int(coin_value):
            return Err(ErrorKind.VALIDATION, "Please enter a valid coin amount")
        if not _positive_int(expires_in_hours):
            return Err(ErrorKind.VALIDATION, "Please enter valid expiration hours")

        expires_at = utcnow() + timedelta(hours=expires_in_hours)
        label = sanitize(label) or None
        try:
            async with self.store.transaction() as session:
                if await self.store.get_code(session, code) is not None:
                    raise DuplicateRowError(code)
                await self.store.insert_code(session, code, coin_value, expires_at, issuer_id, label=label)
        except DuplicateRowError:
            return Err(ErrorKind.DUPLICATE_CODE, "Code already exists")
        except PersistenceError:
            logger.exception("failed to create redeem code %s", code)
            return Err(ErrorKind.PERSISTENCE, "Failed to create redeem code")

        logger.info("redeem code %s created by %s: %d coins, expires %s", code, issuer_id, coin_value, expires_at)
        return Ok(IssuedCode(code=code, coin_value=coin_value, expires_at=expires_at, created_by=issuer_id, label=label))

    async def deactivate(self, code: str, issuer_id: str) -> Result[str]:
        valid = self.threat_filter.validate_code_format(code)
        if not valid.ok:
            return valid
        try:
            async with self.store.transaction() as session:
                updated = await self.store.set_code_active(session, code, False)
        except PersistenceError:
            logger.exception("failed to deactivate redeem code %s", code)
            return Err(ErrorKind.PERSISTENCE, "Failed to disable redeem code")
        if not updated:
            return Err(ErrorKind.NOT_FOUND, "Code not found")
        logger.info("redeem code %s deactivated by %s", code, issuer_id)
        return Ok(code)

    async def redeem(self, user_id: str, code: str) -> Result[Settlement]:
        s = self.settings
        allowed = self.limiter.check_and_record(user_id, REDEEM, s.REDEEM_RATE_ATTEMPTS, s.REDEEM_RATE_WINDOW_MINUTES)
        if not allowed.ok:
            return allowed

        valid = self.threat_filter.validate_code_format(code)
        if not valid.ok:
            return valid

        try:
            async with self.store.transaction() as session:
                row = await self.store.get_active_code(session, code)
                if row is None:
                    raise _ClaimRefused(Err(ErrorKind.NOT_FOUND, "Invalid or expired code"))
                if row.is_expired(utcnow()):
                    raise _ClaimRefused(Err(ErrorKind.EXPIRED, "Code has expired"))
                coins = row.coin_value

                await self.store.ensure_user(session, user_id)
                if await self.store.find_redemption(session, user_id, code) is not None:
                    raise DuplicateRowError(f"{user_id}:{code}")
                await self.store.insert_redemption(session, user_id, code, coins)

                credited = await self.balances.apply_delta_in(session, user_id, coins)
                if not credited.ok:
                    raise _ClaimRefused(credited)
        except _ClaimRefused as exc:
            return exc.err
        except DuplicateRowError:
            logger.info("duplicate redemption of %s by %s refused", code, user_id)
            return Err(ErrorKind.DUPLICATE_REDEMPTION, "You have already redeemed this code")
        except PersistenceError:
            logger.exception("redemption of %s by %s failed", code, user_id)
            return Err(ErrorKind.PERSISTENCE, "Failed to redeem code")

        logger.info("user %s redeemed %s for %d coins", user_id, code, coins)
        return Ok(Settlement(code=code, coins=coins, new_balance=credited.value))
