"""Apartment viewer: resilient record fetch, media resolution and gallery state."""

__version__ = "0.1.0"
