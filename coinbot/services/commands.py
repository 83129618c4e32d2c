"""
Chat command dispatch.

Turns one inbound text message into a service call and renders the reply
text sent back through the messaging transport.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Awaitable, Callable

from coinbot.core.results import Err, ErrorKind, PersistenceError
from coinbot.core.settings import Settings
from coinbot.services.balance_service import BalanceService
from coinbot.services.game_engine import GameEngine
from coinbot.services.rate_limiter import SuspiciousActivityTracker
from coinbot.services.redemption_service import RedemptionService
from coinbot.services.secure_random import RED
from coinbot.services.threat_filter import ThreatFilter

logger = logging.getLogger(__name__)

INT_PATTERN = re.compile(r"[+-]?\d+")

HELP_TEXT = """🎮 *Coin Bot - Game Commands*

🎰 *.roulette <amount> <red/black>* - Play roulette
🎯 *.guess <number>* - Guess a number ({low}-{high})
💰 *.balance* - Check your coin balance
📊 *.stats* - Your games in the last 24 hours
🎁 *.claim <code>* - Redeem a code for coins
❓ *.help* - Show this help message

*Admin Commands:*
🔧 *.createcode <code> <coins> <hours> [label]* - Create redeem code
🚫 *.disablecode <code>* - Disable a redeem code

*Game Rules:*
• Roulette: Win {multiplier}x your bet, lose your bet
• Guess Game: Win {reward} coins if correct, lose {penalty} coins if wrong
• All games require coins to play"""


@dataclass(frozen=True)
class CommandReply:
    ok: bool
    reply: str
    kind: ErrorKind | None = None


def _parse_int(value: str) -> int | None:
    if not INT_PATTERN.fullmatch(value):
        return None
    return int(value)


def _failure(err: Err) -> CommandReply:
    return CommandReply(ok=False, reply=f"❌ {err.message}", kind=err.kind)


def _usage(text: str) -> CommandReply:
    return CommandReply(ok=False, reply=f"❌ Usage: {text}", kind=ErrorKind.VALIDATION)


def _color(name: str) -> str:
    return "🔴" if name == RED else "⚫"


Handler = Callable[[str, list[str]], Awaitable[CommandReply]]


class CommandService:
    def __init__(
        self,
        threat_filter: ThreatFilter,
        tracker: SuspiciousActivityTracker,
        balances: BalanceService,
        games: GameEngine,
        redemptions: RedemptionService,
        settings: Settings,
    ):
        self.threat_filter = threat_filter
        self.tracker = tracker
        self.balances = balances
        self.games = games
        self.redemptions = redemptions
        self.settings = settings
        self._handlers: dict[str, Handler] = {
            ".roulette": self._roulette,
            ".guess": self._guess,
            ".balance": self._balance,
            ".stats": self._stats,
            ".claim": self._claim,
            ".createcode": self._create_code,
            ".disablecode": self._disable_code,
            ".help": self._help,
        }

    async def handle(self, sender: str, text: str) -> CommandReply | None:
        """Return the reply for a message, or None when the message is not a command."""
        user_id = sender.split("@", 1)[0].strip()
        text = text or ""

        screened = self.threat_filter.inspect(text)
        if not screened.ok:
            self.tracker.record(user_id, "rejected_input")
            return CommandReply(
                ok=False,
                reply="⚠️ Invalid command detected. Please use only allowed bot commands.",
                kind=ErrorKind.VALIDATION,
            )

        if not text.startswith("."):
            return None
        if not user_id:
            logger.warning("command without a sender id: %r", sender)
            return CommandReply(ok=False, reply="❌ Could not identify the sender.", kind=ErrorKind.VALIDATION)

        parts = text.split()
        handler = self._handlers.get(parts[0].lower())
        if handler is None:
            return CommandReply(ok=False, reply="❓ Unknown command. Type .help for available commands.", kind=ErrorKind.VALIDATION)

        try:
            return await handler(user_id, parts[1:])
        except PersistenceError:
            logger.exception("command %s from %s failed", parts[0], user_id)
            return CommandReply(
                ok=False,
                reply="❌ An error occurred while processing your command.",
                kind=ErrorKind.PERSISTENCE,
            )

    async def _roulette(self, user_id: str, args: list[str]) -> CommandReply:
        if len(args) != 2:
            return _usage(".roulette <amount> <red/black>")
        amount = _parse_int(args[0])
        if amount is None or amount <= 0:
            return CommandReply(ok=False, reply="❌ Please enter a valid bet amount.", kind=ErrorKind.VALIDATION)

        result = await self.games.roulette(user_id, amount, args[1])
        if not result.ok:
            return _failure(result)

        r = result.value
        lines = [
            "🎰 *Roulette Result*",
            "",
            f"Your choice: {_color(r.choice)} {r.choice}",
            f"Result: {_color(r.result)} {r.result}",
            "",
            "🎉 You won!" if r.won else "💸 You lost!",
            f"{r.delta:+d} coins",
            "",
            f"💰 New balance: {r.new_balance} coins",
        ]
        return CommandReply(ok=True, reply="\n".join(lines))

    async def _guess(self, user_id: str, args: list[str]) -> CommandReply:
        if len(args) != 1:
            return _usage(".guess <number 1-10>")
        guess = _parse_int(args[0])
        if guess is None:
            return CommandReply(ok=False, reply="❌ Please enter a number between 1 and 10.", kind=ErrorKind.VALIDATION)

        result = await self.games.guess(user_id, guess)
        if not result.ok:
            return _failure(result)

        r = result.value
        lines = [
            "🎯 *Guess the Number*",
            "",
            f"Your guess: {r.guess}",
            f"Secret number: {r.secret}",
            "",
            "🎉 Correct!" if r.won else "💸 Wrong guess!",
            f"{r.delta:+d} coins",
            "",
            f"💰 New balance: {r.new_balance} coins",
        ]
        return CommandReply(ok=True, reply="\n".join(lines))

    async def _balance(self, user_id: str, args: list[str]) -> CommandReply:
        balance = await self.balances.get_balance(user_id)
        return CommandReply(ok=True, reply=f"💰 Your balance: {balance} coins")

    async def _stats(self, user_id: str, args: list[str]) -> CommandReply:
        stats = await self.games.stats(user_id)
        lines = [
            "📊 *Last 24 hours*",
            f"Games played: {stats.game_count}",
            f"Wins: {stats.wins}",
            f"Total bet: {stats.total_bet} coins",
            f"Total won: {stats.total_won} coins",
        ]
        return CommandReply(ok=True, reply="\n".join(lines))

    async def _claim(self, user_id: str, args: list[str]) -> CommandReply:
        if len(args) != 1:
            return _usage(".claim <code>")

        result = await self.redemptions.redeem(user_id, args[0])
        if not result.ok:
            return _failure(result)
        s = result.value
        return CommandReply(
            ok=True,
            reply=f"🎉 Code redeemed successfully!\n\n+{s.coins} coins\n💰 New balance: {s.new_balance} coins",
        )

    async def _create_code(self, user_id: str, args: list[str]) -> CommandReply:
        if not self.settings.is_issuer(user_id):
            logger.warning("non-issuer %s tried to create a redeem code", user_id)
            return CommandReply(ok=False, reply="❌ You are not authorized to create redeem codes.", kind=ErrorKind.UNAUTHORIZED)
        if len(args) < 3:
            return _usage(".createcode <code> <coins> <hours> [label]")

        code, coins, hours = args[0], _parse_int(args[1]), _parse_int(args[2])
        if coins is None or coins <= 0:
            return CommandReply(ok=False, reply="❌ Please enter a valid coin amount.", kind=ErrorKind.VALIDATION)
        if hours is None or hours <= 0:
            return CommandReply(ok=False, reply="❌ Please enter valid expiration hours.", kind=ErrorKind.VALIDATION)
        label = " ".join(args[3:]) or None

        result = await self.redemptions.issue(code, coins, hours, user_id, label=label)
        if not result.ok:
            if result.kind == ErrorKind.DUPLICATE_CODE:
                return CommandReply(ok=False, reply="❌ Code already exists! Please use a different code.", kind=result.kind)
            return _failure(result)

        issued = result.value
        lines = [
            "✅ Redeem code created successfully!",
            "",
            f"Code: {issued.code}",
            f"Value: {issued.coin_value} coins",
            f"Expires: {issued.expires_at:%Y-%m-%d %H:%M} UTC",
        ]
        if issued.label:
            lines.append(f"Label: {issued.label}")
        return CommandReply(ok=True, reply="\n".join(lines))

    async def _disable_code(self, user_id: str, args: list[str]) -> CommandReply:
        if not self.settings.is_issuer(user_id):
            return CommandReply(ok=False, reply="❌ You are not authorized to disable redeem codes.", kind=ErrorKind.UNAUTHORIZED)
        if len(args) != 1:
            return _usage(".disablecode <code>")

        result = await self.redemptions.deactivate(args[0], user_id)
        if not result.ok:
            return _failure(result)
        return CommandReply(ok=True, reply=f"🚫 Code {result.value} disabled.")

    async def _help(self, user_id: str, args: list[str]) -> CommandReply:
        s = self.settings
        return CommandReply(ok=True, reply=HELP_TEXT.format(
            multiplier=s.ROULETTE_MULTIPLIER,
            reward=s.GUESS_WIN_REWARD,
            penalty=s.GUESS_LOSS_PENALTY,
            low=s.GUESS_MIN_NUMBER,
            high=s.GUESS_MAX_NUMBER,
        ))
