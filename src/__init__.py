# src/__init__.py — v1
"""seoanalyzer: cached multi-stage site analysis pipeline."""

from seoanalyzer.version import __version__

__all__ = ["__version__"]
