"""Numeric tuning constants for the ingestion and retrieval pipeline.

Every weight, threshold, batch size and preview length used by the
pipeline is a field on :class:`PipelineTuning`.  Components receive one
instance at construction time, so tests can override any constant with
``PipelineTuning(vector_weight=0.5, ...)`` and deployments can override
them from the YAML config::

    retrieval:
      vector_weight: 0.7
      text_weight: 0.3
    embedding:
      batch_size: 5
      batch_delay_seconds: 0.1
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

# YAML section -> {yaml key: field name}
_YAML_SECTIONS: dict[str, dict[str, str]] = {
    "retrieval": {
        "vector_weight": "vector_weight",
        "text_weight": "text_weight",
        "hybrid_vector_fraction": "hybrid_vector_fraction",
        "hybrid_text_fraction": "hybrid_text_fraction",
        "hybrid_vector_threshold": "hybrid_vector_threshold",
        "degraded_vector_threshold": "degraded_vector_threshold",
        "substring_score": "substring_score",
        "candidate_multiplier": "candidate_multiplier",
        "min_candidates": "min_candidates",
        "overfetch_factor": "overfetch_factor",
        "default_limit": "default_limit",
        "default_threshold": "default_threshold",
        "hybrid_threshold": "hybrid_threshold",
        "lexical_threshold": "lexical_threshold",
        "similar_cases_threshold": "similar_cases_threshold",
        "insights_threshold": "insights_threshold",
    },
    "embedding": {
        "batch_size": "embed_batch_size",
        "batch_delay_seconds": "embed_batch_delay",
        "max_chars": "max_embed_chars",
        "min_text_chars": "min_text_chars",
    },
    "chunking": {
        "chunk_size": "chunk_size",
        "overlap": "chunk_overlap",
        "min_chunk_chars": "min_chunk_chars",
        "min_source_chars": "min_chunk_source_chars",
    },
    "formatting": {
        "search_preview_chars": "search_preview_chars",
        "listing_preview_chars": "listing_preview_chars",
        "max_entities": "max_entities",
        "ingest_entity_preview": "ingest_entity_preview",
    },
}


class PipelineTuning(BaseModel):
    """Single frozen record of every pipeline constant."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    # --- Hybrid fusion ---
    vector_weight: float = Field(default=0.7, ge=0.0, description="Weight of a vector hit in hybrid fusion.")
    text_weight: float = Field(default=0.3, ge=0.0, description="Weight of a lexical hit in hybrid fusion.")
    hybrid_vector_fraction: float = Field(default=0.7, gt=0.0, description="Vector sub-search size as a fraction of limit.")
    hybrid_text_fraction: float = Field(default=0.5, gt=0.0, description="Lexical sub-search size as a fraction of limit.")
    hybrid_vector_threshold: float = Field(default=0.1, ge=0.0, description="Inclusion threshold for the vector sub-search.")
    degraded_vector_threshold: float = Field(
        default=0.5, ge=0.0, description="Threshold of the vector-only tier used when fusion fails."
    )

    # --- Vector search over-fetch ---
    candidate_multiplier: int = Field(default=10, ge=1, description="numCandidates = max(limit * this, min_candidates).")
    min_candidates: int = Field(default=100, ge=1)
    overfetch_factor: int = Field(default=2, ge=1, description="Neighbours requested = limit * this.")

    # --- Fallback tiers ---
    substring_score: float = Field(default=0.3, ge=0.0, description="Fixed score of substring-scan hits.")

    # --- Caller defaults ---
    default_limit: int = Field(default=10, ge=1)
    default_threshold: float = Field(default=0.7, ge=0.0, description="Vector-mode threshold when the caller gives none.")
    hybrid_threshold: float = Field(default=0.3, ge=0.0, description="Fused-score threshold when the caller gives none.")
    lexical_threshold: float = Field(default=0.0, ge=0.0, description="Lexical-mode threshold when the caller gives none.")
    similar_cases_threshold: float = Field(default=0.6, ge=0.0)
    insights_threshold: float = Field(default=0.6, ge=0.0, description="Vector threshold for medical insights.")

    # --- Embedding ---
    embed_batch_size: int = Field(default=5, ge=1)
    embed_batch_delay: float = Field(default=0.1, ge=0.0, description="Seconds slept between embedding batches.")
    max_embed_chars: int = Field(default=8000, ge=1)
    min_text_chars: int = Field(default=5, ge=0, description="Minimum text length for a stored embedding record.")

    # --- Chunking ---
    chunk_size: int = Field(default=500, ge=1, description="Words per chunk window.")
    chunk_overlap: int = Field(default=100, ge=0, description="Words shared by consecutive windows.")
    min_chunk_chars: int = Field(default=50, ge=0, description="A window is kept only if longer than this.")
    min_chunk_source_chars: int = Field(default=100, ge=0)

    # --- Formatting ---
    search_preview_chars: int = Field(default=500, ge=1)
    listing_preview_chars: int = Field(default=200, ge=1)
    max_entities: int = Field(default=5, ge=0)
    ingest_entity_preview: int = Field(default=10, ge=0)

    @classmethod
    def from_config(cls, config: dict[str, Any] | None) -> PipelineTuning:
        """Build a tuning record from the resolved YAML config dict.

        Unknown keys inside the known sections are ignored; missing keys
        keep their defaults.
        """
        overrides: dict[str, Any] = {}
        for section, mapping in _YAML_SECTIONS.items():
            values = (config or {}).get(section) or {}
            for yaml_key, field_name in mapping.items():
                if yaml_key in values and values[yaml_key] is not None:
                    overrides[field_name] = values[yaml_key]
        return cls(**overrides)
