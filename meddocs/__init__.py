"""meddocs -- ingestion and hybrid retrieval for medical documents."""

__version__ = "0.1.0"
