"""
Grant a system role to an existing user.

The user must have signed in at least once so their row exists.

    python scripts/create_admin_user.py someone@example.com [ADMIN|SUPPORT|USER]
"""
import asyncio
import sys
from pathlib import Path

# Add project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from app.db.database import AsyncSessionLocal
from app.db.models.enums import SystemRole
from app.exceptions.domain import NotFoundError
from app.services.accounts import grant_system_role
from loguru import logger


async def create_admin_user(email: str, role: SystemRole):
    async with AsyncSessionLocal() as db:
        try:
            user = await grant_system_role(db, email, role)
        except NotFoundError:
            logger.error(f"User {email} not found; they must sign in once before being promoted")
            return 1
        logger.info(f"✅ {user.email} is now {user.system_role.value} (ID: {user.id})")
        return 0


if __name__ == "__main__":
    if len(sys.argv) < 2:
        logger.error("Usage: create_admin_user.py EMAIL [ADMIN|SUPPORT|USER]")
        sys.exit(2)
    role_name = sys.argv[2].upper() if len(sys.argv) > 2 else SystemRole.ADMIN.value
    sys.exit(asyncio.run(create_admin_user(sys.argv[1].strip(), SystemRole(role_name))))
