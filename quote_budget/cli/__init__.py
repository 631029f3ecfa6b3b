"""
CLI Module - Command-line interface for the Quote Budget Engine.

Provides management commands for:
- Budget totals of a quote
- Offline sync queue inspection and replay
- Running the API server
"""

from .commands import cli

__all__ = ['cli']
