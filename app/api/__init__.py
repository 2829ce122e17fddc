from fastapi import APIRouter
from app.api.v1 import (
    companyrouter,
    userrouter,
    approval_flow_route,
    expense_route,
    expense_approval_route,
    notification_route
)

api_router = APIRouter()

api_router.include_router(companyrouter.router, prefix="/api/v1")
api_router.include_router(userrouter.router, prefix="/api/v1")
api_router.include_router(approval_flow_route.router, prefix="/api/v1")
api_router.include_router(expense_route.router, prefix="/api/v1")
api_router.include_router(expense_approval_route.router, prefix="/api/v1")
api_router.include_router(notification_route.router, prefix="/api/v1")
