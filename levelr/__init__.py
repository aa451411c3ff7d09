"""Levelr backend: feature gating, usage accounting and bid summaries."""

__version__ = "0.3.0"
