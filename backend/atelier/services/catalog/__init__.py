"""Showcase catalog items."""
