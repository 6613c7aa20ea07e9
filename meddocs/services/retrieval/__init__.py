"""Retrieval: vector, lexical and substring tiers plus hybrid fusion."""

from meddocs.services.retrieval.fusion import RetrievalFusion
from meddocs.services.retrieval.strategies import (
    FusionStrategy,
    LexicalStrategy,
    RetrievalStrategy,
    SubstringStrategy,
    VectorStrategy,
    run_ladder,
)

__all__ = [
    "FusionStrategy",
    "LexicalStrategy",
    "RetrievalFusion",
    "RetrievalStrategy",
    "SubstringStrategy",
    "VectorStrategy",
    "run_ladder",
]
