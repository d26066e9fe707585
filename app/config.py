# app/config.py
from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# .env lives next to pyproject.toml (project root = parent of app/)
ENV_FILE = Path(__file__).resolve().parents[1] / ".env"
load_dotenv(ENV_FILE, override=False)

class Settings(BaseSettings):
    # ---- App / Infra ----
    APP_VERSION: str = "0.1.0"
    # Hosted Postgres (Supabase). Optional at class level so the API and the
    # tests can start without it; require_database_url() checks at runtime.
    DATABASE_URL: Optional[str] = Field(default_factory=lambda: os.getenv("DATABASE_URL"))

    # ---- OpenAI (text generation) ----
    OPENAI_API_KEY: Optional[str] = Field(default_factory=lambda: os.getenv("OPENAI_API_KEY"))
    OPENAI_MODEL: str = "gpt-4o-mini"
    OPENAI_TIMEOUT_S: int = 120

    # ---- Unsplash (image search, optional) ----
    UNSPLASH_ACCESS_KEY: Optional[str] = None

    # ---- Scraping ----
    AMAZON_DOMAIN: str = "www.amazon.fr"
    SCRAPER_TIMEOUT_S: int = 15
    NEWS_LANGUAGE: str = "fr"
    NEWS_REGION: str = "FR"

    # ---- Pacing (seconds) ----
    INGEST_ITEM_DELAY_S: float = 1.5
    NEWS_ITEM_DELAY_S: float = 1.5
    CRON_NEWS_ITEM_DELAY_S: float = 2.0
    CRON_BLOG_DELAY_S: float = 3.0
    RSS_DELAY_S: float = 0.5

    # ---- Cron ----
    CRON_SECRET: Optional[str] = None

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

settings = Settings()

def require_openai() -> str:
    """
    Runtime check with a clear error when the OpenAI key is missing.
    """
    if not settings.OPENAI_API_KEY:
        raise RuntimeError(
            "OPENAI_API_KEY is missing. Set it in the environment or in .env "
            f"(looked in: {ENV_FILE})."
        )
    return settings.OPENAI_API_KEY


def require_database_url() -> str:
    if not settings.DATABASE_URL:
        raise RuntimeError(
            "DATABASE_URL is missing. Set it in the environment or in .env "
            f"(looked in: {ENV_FILE})."
        )
    return settings.DATABASE_URL
