"""CRUD operations for database models"""
from . import user
from . import organization
from . import invitation
from . import ticket

__all__ = ["user", "organization", "invitation", "ticket"]
