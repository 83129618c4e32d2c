from __future__ import annotations

from datetime import datetime

from sqlalchemy import String, Integer, Boolean, DateTime, Index, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from coinbot.db import Base, utcnow


class RedeemCode(Base):
    __tablename__ = "redeem_codes"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    code: Mapped[str] = mapped_column(String(50), unique=True, index=True)
    coin_value: Mapped[int] = mapped_column(Integer)
    created_by: Mapped[str] = mapped_column(String(64))
    label: Mapped[str | None] = mapped_column(String(100), nullable=True)
    expires_at: Mapped[datetime] = mapped_column(DateTime)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at


class Redemption(Base):
    __tablename__ = "code_redemptions"
    __table_args__ = (
        UniqueConstraint("user_id", "code", name="uq_redemption_user_code"),
        Index("idx_redemptions_user_code", "user_id", "code"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64))
    code: Mapped[str] = mapped_column(String(50), index=True)
    coins_received: Mapped[int] = mapped_column(Integer)
    redeemed_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
