from __future__ import annotations

from pathlib import Path
from typing import Literal

from dotenv import load_dotenv
from pydantic_settings import BaseSettings

load_dotenv(Path(__file__).resolve().parent / ".env")


class Settings(BaseSettings):
    # App
    app_env: str = "development"
    app_port: int = 8000
    app_host: str = "0.0.0.0"
    cors_origins: str = "http://localhost:3000"

    # Groq (transcription + default chat provider)
    groq_api_key: str = ""
    chat_provider: Literal["groq", "bedrock"] = "groq"
    chat_model: str = "llama3-8b-8192"
    transcription_model: str = "whisper-large-v3"

    # AWS (alternate chat provider)
    aws_access_key_id: str = ""
    aws_secret_access_key: str = ""
    aws_region: str = "us-east-1"
    bedrock_model_id: str = "amazon.nova-lite-v1:0"

    # Cartesia speech synthesis
    cartesia_api_key: str = ""
    cartesia_url: str = "https://api.cartesia.ai/tts/bytes"
    cartesia_version: str = "2024-06-30"
    tts_model_id: str = "sonic-english"
    tts_voice_id: str = "bd9120b6-7761-47a6-a446-77ca49132781"
    tts_sample_rate: int = 24000

    # Skills
    google_cse_api_key: str = ""
    google_cse_cx: str = ""
    google_cse_url: str = "https://www.googleapis.com/customsearch/v1"
    knowledge_catalog_url: str = "https://aitekph.com/knowledge-products.json"
    youtube_video_id: str = "dQw4w9WgXcQ"

    # Upstream calls
    upstream_timeout_seconds: float = 30.0

    @property
    def cors_origin_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    @property
    def is_dev(self) -> bool:
        return self.app_env == "development"

    @property
    def has_groq_key(self) -> bool:
        return bool(self.groq_api_key)

    @property
    def has_aws_credentials(self) -> bool:
        return bool(self.aws_access_key_id and self.aws_secret_access_key)

    @property
    def has_cartesia_key(self) -> bool:
        return bool(self.cartesia_api_key)

    @property
    def has_search_credentials(self) -> bool:
        return bool(self.google_cse_api_key and self.google_cse_cx)

    model_config = {"env_file": ".env", "extra": "ignore"}


settings = Settings()
