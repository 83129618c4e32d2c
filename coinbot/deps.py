from __future__ import annotations

from fastapi import Depends, HTTPException, Request

from coinbot.core.settings import Settings
from coinbot.services.commands import CommandService
from coinbot.services.balance_service import BalanceService
from coinbot.services.game_engine import GameEngine
from coinbot.services.security import TRANSPORT_TOKEN, decode_token


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_commands(request: Request) -> CommandService:
    return request.app.state.commands


def get_balances(request: Request) -> BalanceService:
    return request.app.state.balances


def get_games(request: Request) -> GameEngine:
    return request.app.state.games


async def get_transport(request: Request, settings: Settings = Depends(get_settings)) -> str:
    """Name of the messaging transport calling us, from its bearer token."""
    auth = request.headers.get("Authorization", "")
    scheme, _, token = auth.partition(" ")
    if scheme.lower() != "bearer" or not token:
        raise HTTPException(status_code=401, detail="not_authenticated")
    payload = decode_token(settings, token)
    if not payload or payload.get("type") != TRANSPORT_TOKEN:
        raise HTTPException(status_code=401, detail="invalid_token")
    name = payload.get("sub")
    if not name:
        raise HTTPException(status_code=401, detail="invalid_token")
    return name
