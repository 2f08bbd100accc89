"""
Tribunal Integrations - external Steam and market data sources.

This module contains:
- steam_inventory: paginated CS2 inventory fetch
- market: Steam market and bulk feed price sources
"""

__all__: list[str] = []
