"""Application settings loaded from environment variables via pydantic-settings.

Values are read from two sources, in priority order:

  1. Environment variables, e.g. ``EMBEDDING_PROVIDER=openai``
  2. A ``.env`` file in the working directory (local development)

Field ``openai_api_key`` maps to env var ``OPENAI_API_KEY``.  Defaults apply
when neither source sets a value.  Numeric retrieval constants live in
``config/config.yaml`` (see :mod:`meddocs.config.tuning`), not here.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """meddocs application settings.

    Environment variables override defaults. Loaded from .env when present.
    """

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # === Embedding ===
    # "auto" tries openai (key set) -> fastembed -> sentence_transformer -> nomic.
    embedding_provider: str = "auto"
    embedding_model: str = ""  # Empty = provider default
    openai_api_key: str = ""
    openai_base_url: str = ""  # OpenAI-compatible endpoint (TogetherAI, etc.)
    openai_embedding_model: str = ""
    ollama_base_url: str = "http://localhost:11434"

    # === Document store ===
    chromadb_persist_dir: str = "./data/chromadb"
    chromadb_collection_prefix: str = "meddocs"

    # === Extraction ===
    tesseract_lang: str = "eng"
    ocr_min_confidence: float = 0.6

    # === App Config ===
    config_path: str = "config/config.yaml"
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    app_env: str = "development"
    log_level: str = "INFO"

    def get_available_embedding_providers(self) -> list[str]:
        """Return embedding provider names in the order ``auto`` tries them."""
        if self.embedding_provider != "auto":
            return [self.embedding_provider]
        providers: list[str] = []
        if self.openai_api_key:
            providers.append("openai")
        providers.extend(["fastembed", "sentence_transformer", "nomic"])
        return providers
