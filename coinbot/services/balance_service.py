from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from coinbot.core.results import Err, ErrorKind, Ok, PersistenceError, Result
from coinbot.services.ledger_store import LedgerStore

logger = logging.getLogger(__name__)


class BalanceService:
    def __init__(self, store: LedgerStore):
        self.store = store

    async def get_balance(self, user_id: str) -> int:
        async with self.store.transaction() as session:
            user = await self.store.ensure_user(session, user_id)
            return user.coins

    async def apply_delta(self, user_id: str, delta: int) -> Result[int]:
        try:
            async with self.store.transaction() as session:
                return await self.apply_delta_in(session, user_id, delta)
        except PersistenceError:
            logger.exception("balance update failed for %s (delta %d)", user_id, delta)
            return Err(ErrorKind.PERSISTENCE, "balance_update_failed")

    async def apply_delta_in(self, session: AsyncSession, user_id: str, delta: int) -> Result[int]:
        """Apply a signed delta inside the caller's transaction."""
        await self.store.ensure_user(session, user_id)
        new_balance = await self.store.apply_delta(session, user_id, delta)
        if new_balance is None:
            return Err(ErrorKind.INSUFFICIENT_BALANCE, "Insufficient balance")
        return Ok(new_balance)
