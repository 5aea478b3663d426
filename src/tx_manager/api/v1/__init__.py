"""V1 REST API routes.

Combines all sub-routers under the ``/v1`` prefix.
"""

from fastapi import APIRouter

from tx_manager.api.v1.transactions import router as transactions_router
from tx_manager.api.v1.users import router as users_router

v1_router = APIRouter(prefix="/v1")

v1_router.include_router(transactions_router)
v1_router.include_router(users_router)

__all__ = ["v1_router"]
