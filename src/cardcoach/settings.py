from pathlib import Path
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration."""

    host: str = "0.0.0.0"
    port: int = 3000
    debug: bool = False
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    model: str = "gpt-4o-mini"
    temperature: float = 0.0
    openai_api_key: str | None = None
    openai_base_url: str | None = "https://api.openai.com/v1"
    model_request_timeout_seconds: float = 30.0

    tool_request_timeout_seconds: float = 10.0
    max_tool_rounds: int = 6

    history_window: int = 20
    history_ttl_seconds: int = 3600  # 1 hour
    default_session_id: str = "default"

    cors_origins: str = "*"

    redis_url: str = "redis://localhost:6379/0"

    agent_system_prompt: str = (
        "You are CardCoach, a friendly assistant that helps people decide how "
        "to pay for purchases with their credit cards.\n\n"
        "Use the available tools to look up balances, check whether a purchase "
        "is affordable, compare cards on the market and summarize spending. "
        "Never invent balances or cashback rates: if a tool returns an error or "
        "a message, explain it plainly to the user.\n\n"
        "Keep your answers short and concrete."
    )

    accounts_path: Path = Path("data/accountsList.json")
    transactions_path: Path = Path("data/transactionHistory.csv")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="",
        extra="ignore",
    )


def get_settings() -> Settings:
    """Return the application settings singleton (loaded from env / .env)."""
    global _SETTINGS
    try:
        return _SETTINGS
    except NameError:
        _SETTINGS = Settings()
        return _SETTINGS
