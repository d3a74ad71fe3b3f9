from fastapi import APIRouter

from expense_approvals.api.v1 import approval_rules, approvals, expenses

api_router = APIRouter()

api_router.include_router(approvals.router, prefix="/approvals", tags=["approvals"])
api_router.include_router(expenses.router, prefix="/expenses", tags=["expenses"])
api_router.include_router(approval_rules.router, prefix="/approval-rules", tags=["approval-rules"])
