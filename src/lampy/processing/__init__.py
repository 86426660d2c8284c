"""This is the processing submodule.

This module contains the functionality necessary to turn raw monitor records
into tidy per-subject series and to run the periodogram analysis on them.
"""
