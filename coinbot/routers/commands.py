from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from coinbot.deps import get_commands, get_transport
from coinbot.services.commands import CommandService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/commands", tags=["commands"])


class CommandIn(BaseModel):
    sender: str = Field(min_length=1, max_length=128, description="transport address of the user, e.g. 6281234567890@c.us")
    text: str = Field(default="", max_length=4096)


class CommandOut(BaseModel):
    ok: bool
    kind: str | None = None
    reply: str | None = None


@router.post("", response_model=CommandOut)
async def run_command(
    payload: CommandIn,
    transport: str = Depends(get_transport),
    commands: CommandService = Depends(get_commands),
) -> CommandOut:
    result = await commands.handle(payload.sender, payload.text)
    if result is None:
        return CommandOut(ok=True)
    logger.debug("%s -> %s: ok=%s kind=%s", transport, payload.sender, result.ok, result.kind)
    return CommandOut(ok=result.ok, kind=result.kind.value if result.kind else None, reply=result.reply)
