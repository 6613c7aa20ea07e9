"""Configuration module -- exports Settings, load_config and PipelineTuning."""

from meddocs.config.loader import load_config
from meddocs.config.settings import Settings
from meddocs.config.tuning import PipelineTuning

__all__ = ["PipelineTuning", "Settings", "load_config"]
