"""
Analytics Module

Read-only reporting over devices, schools, users and applications.
"""

from rtb_assets.modules.analytics.router import router

__all__ = ["router"]
