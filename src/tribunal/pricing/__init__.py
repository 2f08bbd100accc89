"""Tribunal Pricing - inventory valuation."""

from tribunal.pricing.valuation import InventoryValuator, refresh_submission_inventory

__all__ = ["InventoryValuator", "refresh_submission_inventory"]
