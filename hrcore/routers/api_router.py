from fastapi import APIRouter
from hrcore.routers import leave, expenses, payroll

# Centralized API router hub: main.py only imports this one router
api_router = APIRouter()

api_router.include_router(leave.router, tags=["Leave"])
api_router.include_router(expenses.router, tags=["Expenses"])
api_router.include_router(payroll.router, tags=["Payroll"])
