"""Manuscript chunking, provider fallback and job tracking for AI text processing."""

__version__ = "0.1.0"
