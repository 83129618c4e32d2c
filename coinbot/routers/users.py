from __future__ import annotations

from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict

from coinbot.deps import get_balances, get_games, get_transport
from coinbot.services.balance_service import BalanceService
from coinbot.services.game_engine import GameEngine

router = APIRouter(prefix="/api/v1/users", tags=["users"], dependencies=[Depends(get_transport)])


class BalanceOut(BaseModel):
    user_id: str
    balance: int


class GameEventOut(BaseModel):
    game_type: str
    bet_amount: int
    win_amount: int
    game_data: dict[str, Any]
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


@router.get("/{user_id}/balance", response_model=BalanceOut)
async def user_balance(user_id: str, balances: BalanceService = Depends(get_balances)) -> BalanceOut:
    return BalanceOut(user_id=user_id, balance=await balances.get_balance(user_id))


@router.get("/{user_id}/games", response_model=list[GameEventOut])
async def user_games(
    user_id: str,
    limit: int = Query(default=10, ge=1, le=100),
    games: GameEngine = Depends(get_games),
) -> list[GameEventOut]:
    events = await games.history(user_id, limit=limit)
    return [GameEventOut.model_validate(e) for e in events]
