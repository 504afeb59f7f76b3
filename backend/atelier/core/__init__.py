"""
Core package for configuration, logging and shared exceptions.
"""
