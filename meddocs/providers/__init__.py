"""Concrete adapters for the interfaces in :mod:`meddocs.interfaces`."""
