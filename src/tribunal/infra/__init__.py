"""
Tribunal Infrastructure - durable stores and caches.

This module contains:
- database: SQLAlchemy models for prices, valuations and submissions
- price_cache: durable price cache plus in-memory bulk feed snapshot
- cache: statistics results keyed by demo content hash
"""

__all__: list[str] = []
