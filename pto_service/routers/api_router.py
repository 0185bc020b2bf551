from fastapi import APIRouter
from pto_service.routers import (
    pto_requests, pto_approvals, pto_balances, pto_policies, pto_types, pto_blackouts
)

# Centralized API router hub
# Routers are aggregated here, and main.py only imports this single hub.
api_router = APIRouter()

api_router.include_router(pto_requests.router, tags=["PTO Requests"])
api_router.include_router(pto_approvals.router, tags=["PTO Approvals"])
api_router.include_router(pto_balances.router, tags=["PTO Balances"])
api_router.include_router(pto_policies.router, tags=["PTO Policies"])
api_router.include_router(pto_types.router, tags=["PTO Types"])
api_router.include_router(pto_blackouts.router, tags=["PTO Blackouts"])
