from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    openai_api_key: str = Field("", alias="OPENAI_API_KEY")
    openai_translation_model: str = Field("gpt-4o-mini", alias="OPENAI_TRANSLATION_MODEL")
    openai_asr_model: str = Field("whisper-1", alias="OPENAI_ASR_MODEL")
    translation_temperature: float = Field(0.3, alias="TRANSLATION_TEMPERATURE")  # Consistent translations
    translation_max_tokens: int = Field(500, alias="TRANSLATION_MAX_TOKENS")
    backend_port: int = Field(8000, alias="BACKEND_PORT")
    cors_origins: List[str] = Field(default_factory=lambda: ["*"], alias="CORS_ORIGINS")
    log_level: str = Field("INFO", alias="LOG_LEVEL")

    # Language pair is fixed: Arabic speech in, English text out
    source_lang: str = Field("ar", alias="SOURCE_LANG")
    target_lang: str = Field("en", alias="TARGET_LANG")

    # Request limits
    max_text_length: int = Field(5000, alias="MAX_TEXT_LENGTH")
    min_audio_bytes: int = Field(1000, alias="MIN_AUDIO_BYTES")  # Smaller uploads are treated as silence

    # 0 disables the timeout and waits for the provider indefinitely
    translation_timeout_ms: int = Field(30000, alias="TRANSLATION_TIMEOUT_MS")
    asr_timeout_s: float = Field(60.0, alias="ASR_TIMEOUT_S")

    # Caching
    translation_cache_ttl_seconds: int = Field(3600, alias="TRANSLATION_CACHE_TTL_SECONDS")
    max_cache_size: int = Field(1000, alias="MAX_CACHE_SIZE")

    # Hallucination filtering
    filter_severity: str = Field("strict", alias="FILTER_SEVERITY")  # strict|lenient
    filter_config_path: str = Field("", alias="FILTER_CONFIG_PATH")  # JSON file overriding the denylists
    quran_context_path: str = Field("", alias="QURAN_CONTEXT_PATH")  # Whisper prompt context

    # History persistence (Firestore)
    firebase_project_id: str = Field("", alias="FIREBASE_PROJECT_ID")
    firebase_client_email: str = Field("", alias="FIREBASE_CLIENT_EMAIL")
    firebase_private_key: str = Field("", alias="FIREBASE_PRIVATE_KEY")
    history_retry_delay_ms: int = Field(2000, alias="HISTORY_RETRY_DELAY_MS")


settings = Settings()
