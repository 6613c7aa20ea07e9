"""YAML configuration loader with environment variable overrides.

Configuration is loaded in layers (later layers override earlier):

  1. config/config.yaml  -- static defaults checked into the repo
  2. .env file           -- local developer overrides (not committed)
  3. Environment vars    -- set at deploy time

``load_config()`` reads the YAML file first, then deep-merges the values
coming from :class:`Settings` on top.  ``_deep_merge`` merges dicts
recursively:

  base = {"retrieval": {"vector_weight": 0.7}}
  overrides = {"retrieval": {"text_weight": 0.3}}
  result = {"retrieval": {"vector_weight": 0.7, "text_weight": 0.3}}
"""

from pathlib import Path

import yaml

from meddocs.config.settings import Settings


def load_config(path: str | None = None, settings: Settings | None = None) -> dict:
    """Load YAML config and merge with environment-based Settings.

    Args:
        path: Path to the YAML file. Defaults to ``settings.config_path``.
        settings: Settings instance to merge; a fresh one is built if omitted.

    Returns:
        Fully resolved configuration dictionary.
    """
    settings = settings or Settings()
    config_path = Path(path or settings.config_path)
    if config_path.exists():
        with open(config_path) as f:
            yaml_config = yaml.safe_load(f) or {}
    else:
        yaml_config = {}

    env_overrides = {
        "app": {
            "host": settings.app_host,
            "port": settings.app_port,
            "env": settings.app_env,
        },
        "embedding": {
            "provider": settings.embedding_provider,
            "available_providers": settings.get_available_embedding_providers(),
        },
        "store": {
            "persist_dir": settings.chromadb_persist_dir,
            "collection_prefix": settings.chromadb_collection_prefix,
        },
        "extraction": {
            "tesseract_lang": settings.tesseract_lang,
            "min_confidence": settings.ocr_min_confidence,
        },
        "logging": {
            "level": settings.log_level,
        },
    }

    _deep_merge(yaml_config, env_overrides)
    return yaml_config


def _deep_merge(base: dict, overrides: dict) -> None:
    """Recursively merge overrides into base dict, mutating base in place."""
    for key, value in overrides.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value
