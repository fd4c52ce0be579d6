"""
Search Module

Filtered and free-text search across devices, schools and users.
"""

from rtb_assets.modules.search.router import router

__all__ = ["router"]
