from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

from jose import jwt, JWTError

from coinbot.core.settings import Settings

TRANSPORT_TOKEN = "transport"


def create_token(settings: Settings, payload: dict[str, Any], days: int | None = None) -> str:
    exp_days = days if days is not None else settings.TRANSPORT_TOKEN_EXPIRE_DAYS
    data = dict(payload)
    data["exp"] = datetime.now(timezone.utc) + timedelta(days=exp_days)
    return jwt.encode(data, settings.JWT_SECRET, algorithm=settings.JWT_ALG)


def create_transport_token(settings: Settings, name: str, days: int | None = None) -> str:
    return create_token(settings, {"type": TRANSPORT_TOKEN, "sub": name}, days=days)


def decode_token(settings: Settings, token: str) -> dict[str, Any] | None:
    try:
        return jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALG])
    except JWTError:
        return None
