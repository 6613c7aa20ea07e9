"""Application services: extraction, embedding, ingestion, retrieval, formatting."""
