"""Ember - personal assistant scheduled-job engine."""

__version__ = "0.1.0"
