"""
Tribunal - CS2 cheater report evidence pipeline

Extracts match statistics from CS2 demos and values a suspect's Steam
inventory, for moderators reviewing community cheating reports.

Usage:
    from tribunal import extract_statistics

    view = extract_statistics("match.dem")
    for player in view.players:
        print(f"{player.name}: {player.kills}/{player.deaths} ADR {player.adr}")
"""

__version__ = "0.1.0"


def __getattr__(name):
    """Lazy import for heavy dependencies."""
    if name == "extract_identity":
        from tribunal.core.extraction import extract_identity

        return extract_identity
    elif name == "extract_statistics":
        from tribunal.core.extraction import extract_statistics

        return extract_statistics
    elif name == "InventoryValuator":
        from tribunal.pricing.valuation import InventoryValuator

        return InventoryValuator
    elif name == "load_config":
        from tribunal.core.config import load_config

        return load_config
    raise AttributeError(f"module 'tribunal' has no attribute '{name}'")


__all__ = [
    "__version__",
    "extract_identity",
    "extract_statistics",
    "InventoryValuator",
    "load_config",
]
