"""
Users module - Accounts and roles.
"""

from rtb_assets.modules.users.models import Gender, User, UserRole
from rtb_assets.modules.users.repository import UserRepository

__all__ = ["Gender", "User", "UserRole", "UserRepository"]
