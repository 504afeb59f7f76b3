"""Atelier Orders: order lifecycle and revision pricing engine."""

__version__ = "1.0.0"
