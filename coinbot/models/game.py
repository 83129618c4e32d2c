from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import String, Integer, DateTime, JSON
from sqlalchemy.orm import Mapped, mapped_column

from coinbot.db import Base, utcnow


class GameEvent(Base):
    __tablename__ = "game_history"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), index=True)
    game_type: Mapped[str] = mapped_column(String(16))  # roulette/guess
    bet_amount: Mapped[int] = mapped_column(Integer)
    win_amount: Mapped[int] = mapped_column(Integer)
    game_data: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, index=True)
