# wellness_api/api/v1/api.py
from fastapi import APIRouter
from wellness_api.api.v1.endpoints import calls, chat, employees, hierarchy, reports, transcribe, users

api_router = APIRouter()

api_router.include_router(users.router, prefix="/users", tags=["Users"])
api_router.include_router(employees.router, prefix="/employees", tags=["Employees"])
api_router.include_router(hierarchy.router, prefix="/hierarchy", tags=["Hierarchy"])
api_router.include_router(reports.router, prefix="/reports", tags=["Reports"])
api_router.include_router(chat.router, prefix="/chat", tags=["Coach"])
api_router.include_router(transcribe.router, prefix="/transcribe", tags=["Coach"])
api_router.include_router(calls.router, prefix="/call", tags=["Calls"])
