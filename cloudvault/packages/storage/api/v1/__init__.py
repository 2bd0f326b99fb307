"""API v1 汇总路由：统一挂载所有版本化的子路由。"""

from fastapi import APIRouter

from cloudvault.packages.storage.api.v1.endpoints import auth, buckets, files, items

api_router = APIRouter()
api_router.include_router(auth.router)
api_router.include_router(buckets.router)
api_router.include_router(items.router)
api_router.include_router(files.router)
