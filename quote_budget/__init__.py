"""
Quote Budget Engine - Budget computation for audiovisual production quotes.
"""

__version__ = "1.0.0"
