"""
Durable ledger: users, redeem codes, redemptions and the game audit log.

All mutating helpers take the session of an open ``transaction()`` so callers
can group several statements into one unit of work. The transaction commits
when the block exits normally and rolls back on any exception; storage faults
surface as ``PersistenceError``.
"""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, AsyncIterator

from sqlalchemy import select, update, func, case
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from coinbot.core.results import PersistenceError
from coinbot.db import Base, make_engine, make_sessionmaker, utcnow
from coinbot.models.game import GameEvent
from coinbot.models.redeem import RedeemCode, Redemption
from coinbot.models.user import User

logger = logging.getLogger(__name__)


class DuplicateRowError(Exception):
    """An insert hit a uniqueness constraint. Raised out of the open transaction so it rolls back."""


class LedgerStore:
    def __init__(self, database_url: str, starting_balance: int, echo: bool = False):
        self.engine = make_engine(database_url, echo=echo)
        self.sessionmaker = make_sessionmaker(self.engine)
        self.starting_balance = starting_balance

    @property
    def dialect(self) -> str:
        return self.engine.dialect.name

    async def init_schema(self) -> None:
        """Create missing tables and indexes. Safe to run on an initialized store."""
        from coinbot.models import all_models  # noqa: F401

        url = self.engine.url
        if self.dialect == "sqlite" and url.database and url.database != ":memory:":
            Path(url.database).parent.mkdir(parents=True, exist_ok=True)

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def dispose(self) -> None:
        await self.engine.dispose()

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[AsyncSession]:
        async with self.sessionmaker() as session:
            try:
                yield session
                await session.commit()
            except SQLAlchemyError as exc:
                await session.rollback()
                logger.error("ledger transaction rolled back: %s", exc)
                raise PersistenceError(type(exc).__name__) from exc
            except BaseException:
                await session.rollback()
                raise

    # --- users ---

    async def ensure_user(self, session: AsyncSession, user_id: str, for_update: bool = False) -> User:
        user = await self.get_user(session, user_id, for_update=for_update)
        if user:
            return user
        now = utcnow()
        values = dict(user_id=user_id, coins=self.starting_balance, created_at=now, updated_at=now)
        stmt = self._insert_ignore(values)
        if stmt is not None:
            await session.execute(stmt)
        else:
            session.add(User(**values))
            await session.flush()
        user = await self.get_user(session, user_id, for_update=for_update)
        if user is None:
            raise PersistenceError("user_not_created")
        logger.info("created user %s with %d coins", user_id, user.coins)
        return user

    async def get_user(self, session: AsyncSession, user_id: str, for_update: bool = False) -> User | None:
        stmt = select(User).where(User.user_id == user_id)
        if for_update:
            # sqlite ignores FOR UPDATE; its writers are already serialized by BEGIN IMMEDIATE
            stmt = stmt.with_for_update()
        return (await session.execute(stmt)).scalar_one_or_none()

    async def apply_delta(self, session: AsyncSession, user_id: str, delta: int) -> int | None:
        """
        Add a signed delta to the stored balance in one statement.

        Returns the new balance, or None when the row is missing or the delta
        would take the balance below zero (nothing is written in that case).
        """
        stmt = (
            update(User)
            .where(User.user_id == user_id, User.coins + delta >= 0)
            .values(coins=User.coins + delta, updated_at=utcnow())
            .returning(User.coins)
            .execution_options(synchronize_session=False)
        )
        return (await session.execute(stmt)).scalar_one_or_none()

    def _insert_ignore(self, values: dict[str, Any]):
        if self.dialect == "sqlite":
            from sqlalchemy.dialects.sqlite import insert
        elif self.dialect == "postgresql":
            from sqlalchemy.dialects.postgresql import insert
        else:
            return None
        return insert(User).values(**values).on_conflict_do_nothing(index_elements=[User.user_id])

    # --- redeem codes ---

    async def insert_code(
        self,
        session: AsyncSession,
        code: str,
        coin_value: int,
        expires_at: datetime,
        created_by: str,
        label: str | None = None,
    ) -> RedeemCode:
        row = RedeemCode(
            code=code,
            coin_value=coin_value,
            expires_at=expires_at,
            created_by=created_by,
            label=label,
            is_active=True,
            created_at=utcnow(),
        )
        session.add(row)
        try:
            await session.flush()
        except IntegrityError as exc:
            raise DuplicateRowError(code) from exc
        return row

    async def get_code(self, session: AsyncSession, code: str) -> RedeemCode | None:
        return (await session.execute(select(RedeemCode).where(RedeemCode.code == code))).scalar_one_or_none()

    async def get_active_code(self, session: AsyncSession, code: str) -> RedeemCode | None:
        stmt = select(RedeemCode).where(RedeemCode.code == code, RedeemCode.is_active == True)  # noqa: E712
        return (await session.execute(stmt)).scalar_one_or_none()

    async def set_code_active(self, session: AsyncSession, code: str, active: bool) -> bool:
        result = await session.execute(
            update(RedeemCode)
            .where(RedeemCode.code == code)
            .values(is_active=active)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount > 0

    # --- redemptions ---

    async def find_redemption(self, session: AsyncSession, user_id: str, code: str) -> Redemption | None:
        stmt = select(Redemption).where(Redemption.user_id == user_id, Redemption.code == code)
        return (await session.execute(stmt)).scalar_one_or_none()

    async def insert_redemption(self, session: AsyncSession, user_id: str, code: str, coins: int) -> Redemption:
        row = Redemption(user_id=user_id, code=code, coins_received=coins, redeemed_at=utcnow())
        session.add(row)
        try:
            await session.flush()
        except IntegrityError as exc:
            raise DuplicateRowError(f"{user_id}:{code}") from exc
        return row

    # --- game audit log ---

    async def append_game_event(
        self,
        session: AsyncSession,
        user_id: str,
        game_type: str,
        bet_amount: int,
        win_amount: int,
        game_data: dict[str, Any],
    ) -> GameEvent:
        event = GameEvent(
            user_id=user_id,
            game_type=game_type,
            bet_amount=bet_amount,
            win_amount=win_amount,
            game_data=game_data,
            created_at=utcnow(),
        )
        session.add(event)
        await session.flush()
        return event

    async def game_stats(self, session: AsyncSession, user_id: str, since: datetime) -> dict[str, int]:
        stmt = select(
            func.count(GameEvent.id),
            func.sum(case((GameEvent.win_amount > GameEvent.bet_amount, 1), else_=0)),
            func.sum(GameEvent.bet_amount),
            func.sum(GameEvent.win_amount),
        ).where(GameEvent.user_id == user_id, GameEvent.created_at > since)
        count, wins, total_bet, total_won = (await session.execute(stmt)).one()
        return {
            "game_count": int(count or 0),
            "wins": int(wins or 0),
            "total_bet": int(total_bet or 0),
            "total_won": int(total_won or 0),
        }

    async def recent_games(self, session: AsyncSession, user_id: str, limit: int = 10) -> list[GameEvent]:
        stmt = (
            select(GameEvent)
            .where(GameEvent.user_id == user_id)
            .order_by(GameEvent.created_at.desc(), GameEvent.id.desc())
            .limit(limit)
        )
        return list((await session.execute(stmt)).scalars().all())
