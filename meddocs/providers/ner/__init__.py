"""Medical NER implementations."""

from meddocs.providers.ner.pattern_ner_provider import PatternNERProvider

__all__ = ["PatternNERProvider"]
