"""Client profile registry."""
