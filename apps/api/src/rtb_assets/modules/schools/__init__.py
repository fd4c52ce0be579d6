"""
Schools module - School registry.
"""

from rtb_assets.modules.schools.models import School
from rtb_assets.modules.schools.repository import SchoolRepository

__all__ = ["School", "SchoolRepository"]
