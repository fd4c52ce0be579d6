from fastapi import APIRouter

from rtb_assets.modules.analytics import router as analytics_router
from rtb_assets.modules.applications import router as applications_router
from rtb_assets.modules.auth import router as auth_router
from rtb_assets.modules.automation import router as automation_router
from rtb_assets.modules.devices.router import router as devices_router
from rtb_assets.modules.schools.router import router as schools_router
from rtb_assets.modules.search import router as search_router
from rtb_assets.modules.users.router import router as users_router

api_router = APIRouter()

api_router.include_router(auth_router, prefix="/auth", tags=["Authentication"])

api_router.include_router(users_router, prefix="/users", tags=["Users"])

api_router.include_router(schools_router, prefix="/schools", tags=["Schools"])

api_router.include_router(devices_router, prefix="/devices", tags=["Devices"])

api_router.include_router(applications_router, prefix="/applications", tags=["Applications"])

api_router.include_router(analytics_router, prefix="/analytics", tags=["Analytics"])

api_router.include_router(automation_router, prefix="/automation", tags=["Automation"])

api_router.include_router(search_router, prefix="/search", tags=["Search"])
