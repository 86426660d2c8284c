"""Readers and writers for monitor exports and tidy tables."""
