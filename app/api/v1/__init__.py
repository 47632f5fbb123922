"""API v1 endpoints"""
from fastapi import APIRouter
from .endpoints import admin, invitations, organizations, tickets, uploads, users, workflows

api_router = APIRouter()
api_router.include_router(organizations.router, prefix="/organizations", tags=["Organizations"])
api_router.include_router(invitations.router, prefix="/invitations", tags=["Invitations"])
api_router.include_router(tickets.router, prefix="/tickets", tags=["Tickets"])
api_router.include_router(users.router, prefix="/users", tags=["Users"])
api_router.include_router(admin.router, prefix="/admin", tags=["Admin"])
api_router.include_router(uploads.router, prefix="/uploads", tags=["Uploads"])
api_router.include_router(workflows.router, prefix="/workflows", tags=["Workflows"])
