"""
=============================================================================
HANDLERS - Ready-made Route Handlers
=============================================================================
"""

from .index import IndexPageHandler

__all__ = ["IndexPageHandler"]
