from collections.abc import Callable

from fastapi import Depends, HTTPException, status

from app.core.auth import AuthUser, get_current_user

ADMIN_ROLES = frozenset({"super_admin", "admin"})


def require_roles(*roles: str) -> Callable[[AuthUser], AuthUser]:
    allowed = {role.lower() for role in roles}

    async def checker(user: AuthUser = Depends(get_current_user)) -> AuthUser:
        if user.role.lower() not in allowed:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Requires one of roles: {', '.join(sorted(allowed))}",
            )
        return user

    return checker
