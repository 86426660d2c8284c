"""Core models, configuration and pipeline entry points."""
