"""
Role guards for route dependencies.
"""
from fastapi import Depends, HTTPException

from services.auth import get_current_user


def require_roles(*roles: str):
    """Dependency that only lets users with one of `roles` through."""
    async def checker(current_user: dict = Depends(get_current_user)) -> dict:
        if current_user["role"] not in roles:
            raise HTTPException(
                status_code=403,
                detail=f"Access denied. Required role: {' or '.join(roles)}"
            )
        return current_user
    return checker


require_admin = require_roles("admin")
require_donor = require_roles("donor")
require_requester = require_roles("hospital", "external")


async def require_main_admin(current_user: dict = Depends(require_admin)) -> dict:
    if not current_user.get("is_main_admin"):
        raise HTTPException(status_code=403, detail="Only the main admin can perform this action")
    return current_user


__all__ = [
    'require_roles',
    'require_admin',
    'require_donor',
    'require_requester',
    'require_main_admin',
]
