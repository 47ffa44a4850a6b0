"""
Price tracker: read product prices from photos and keep a searchable catalog.

Shared utilities (config, logging, paths) live at the top level; the
catalog package holds the extraction pipeline, storage and the web API.
"""

__all__ = [
    "config",
    "logging",
    "paths",
]
