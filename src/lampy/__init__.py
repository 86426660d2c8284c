"""Circadian analysis of locomotor activity monitor recordings."""
