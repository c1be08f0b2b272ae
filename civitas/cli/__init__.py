"""
Civitas CLI Tools
"""

from .sessions import cli

__all__ = ["cli"]
