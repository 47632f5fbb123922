# app/core/context.py
"""Explicit per-request context handed to every service operation"""
from dataclasses import dataclass
from typing import Optional

from app.db.models import User
from app.exceptions.domain import UnauthenticatedError, BadRequestError


@dataclass
class RequestContext:
    principal: Optional[User]
    active_organization_id: Optional[str] = None
    client_ip: Optional[str] = None

    def require_principal(self) -> User:
        if self.principal is None:
            raise UnauthenticatedError()
        return self.principal

    def scope_organization(self, explicit_id: Optional[str]) -> Optional[str]:
        """
        Reconcile an explicit organization id (path or body) with the
        X-Organization-Id header. Either may be absent; when both are present
        they must agree.
        """
        if explicit_id and self.active_organization_id and explicit_id != self.active_organization_id:
            raise BadRequestError(
                "Organization in the request does not match the X-Organization-Id header"
            )
        return explicit_id or self.active_organization_id
