from __future__ import annotations

from pathlib import Path
from dotenv import load_dotenv
from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_PATH = Path(__file__).resolve().parent.parent.parent / ".env"
if ENV_PATH.exists():
    load_dotenv(ENV_PATH)


class Settings(BaseSettings):
    # --- App ---
    APP_NAME: str = "coinbot"
    LOG_LEVEL: str = "INFO"

    # --- Transport auth ---
    JWT_SECRET: str = "change-me"
    JWT_ALG: str = "HS256"
    TRANSPORT_TOKEN_EXPIRE_DAYS: int = 365

    # --- Database ---
    DATABASE_URL: str = "sqlite+aiosqlite:///./data/bot.db"

    # --- Economy ---
    STARTING_BALANCE: int = 1000

    # roulette
    ROULETTE_MIN_BET: int = 1
    ROULETTE_MAX_BET: int = 1000
    ROULETTE_MULTIPLIER: int = 2

    # number guess
    GUESS_WIN_REWARD: int = 50
    GUESS_LOSS_PENALTY: int = 10
    GUESS_MIN_NUMBER: int = 1
    GUESS_MAX_NUMBER: int = 10

    # --- Rate limits (attempts per window) ---
    ROULETTE_RATE_ATTEMPTS: int = 20
    ROULETTE_RATE_WINDOW_MINUTES: int = 5
    GUESS_RATE_ATTEMPTS: int = 30
    GUESS_RATE_WINDOW_MINUTES: int = 5
    REDEEM_RATE_ATTEMPTS: int = 10
    REDEEM_RATE_WINDOW_MINUTES: int = 5
    RATE_LIMIT_RETENTION_MINUTES: int = 60
    RATE_LIMIT_SWEEP_SECONDS: int = 300

    # --- Abuse tracking ---
    SUSPICIOUS_ACTIVITY_THRESHOLD: int = 5

    # user ids allowed to create / disable redeem codes, e.g. ISSUERS='["6281234567890"]'
    ISSUERS: list[str] = []

    model_config = SettingsConfigDict(
        env_file=ENV_PATH,
        env_file_encoding="utf-8",
        extra="ignore"
    )

    def is_issuer(self, user_id: str) -> bool:
        return user_id in self.ISSUERS


settings = Settings()
