from __future__ import annotations

from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Loads keys from process env, and also from a local .env file.
    model_config = SettingsConfigDict(env_prefix="", extra="ignore", env_file=".env", env_file_encoding="utf-8")

    data_dir: str = "data"
    log_level: str = "INFO"
    host: str = "127.0.0.1"
    port: int = 8000

    # Keys
    gemini_api_key: str | None = None
    openai_api_key: str | None = None

    # Models
    text_provider: Literal["gemini", "openai"] = "gemini"
    gemini_text_model: str = "gemini-2.0-flash"
    gemini_image_model: str = "gemini-3-pro-image-preview"
    openai_text_model: str = "gpt-4.1-mini"
    max_output_tokens: int = 8192
    image_timeout_seconds: float = 60.0

    # Prompts ask the model to answer in this language.
    output_language: str = "Japanese"

    # Web fetching
    fetch_timeout_seconds: float = 15.0
    image_fetch_timeout_seconds: float = 5.0

    # Auth
    secret_key: str | None = None
    token_lifetime_seconds: int = 3600 * 24
    password_hash_rounds: int = 12
    bootstrap_admin_email: str | None = None
    bootstrap_admin_password: str | None = None

    # Rendering
    thumbnail_size: tuple[int, int] = (1280, 720)
    final_thumbnail_count: int = 3


settings = Settings()
