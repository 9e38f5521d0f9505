from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.context import set_actor_id
from app.core.roles import FINANCE_DEPARTMENT, Role, normalize_department
from app.core.security import decode_token
from app.db.session import get_db
from app.models import User


# Tokens are issued by the identity service; this API only verifies them.
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login")


async def get_db_session(db: AsyncSession = Depends(get_db)) -> AsyncSession:
    return db


async def get_current_user(
    request: Request,
    token: str = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db_session),
) -> User:
    try:
        payload = decode_token(token, expected_type="access")
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(exc),
        ) from exc
    user_sub: Optional[str] = payload.get("sub")
    if not user_sub:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")

    stmt = select(User).where(User.id == user_sub, User.deleted.is_(False))
    result = await db.execute(stmt)
    user = result.scalar_one_or_none()
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")
    if not user.active:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Inactive user")
    try:
        user.role_enum
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Unknown role") from exc

    set_actor_id(str(user.id))
    request.state.actor_id = str(user.id)
    return user


def require_roles(*roles: Role):
    allowed = frozenset(roles)

    async def dependency(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role_enum not in allowed:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient role")
        return current_user

    return dependency


require_admin = require_roles(Role.ADMIN, Role.SUPER_ADMIN)
require_employee = require_roles(Role.EMPLOYEE)
require_proposer = require_roles(Role.EMPLOYEE, Role.AGENT)
require_customer = require_roles(Role.CUSTOMER)


async def require_finance_employee(current_user: User = Depends(get_current_user)) -> User:
    """Employees of the finance department."""
    if current_user.role_enum is not Role.EMPLOYEE or normalize_department(current_user.department) != FINANCE_DEPARTMENT:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Finance department access required",
        )
    return current_user
