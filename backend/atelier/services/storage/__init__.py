"""Content storage for uploaded images."""
