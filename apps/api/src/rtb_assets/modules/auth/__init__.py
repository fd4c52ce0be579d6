"""Authentication module."""

from rtb_assets.modules.auth.router import router
from rtb_assets.modules.auth.schemas import LoginRequest, LoginResponse, TokenResponse

__all__ = ["router", "LoginRequest", "LoginResponse", "TokenResponse"]
