from enum import Enum

from fastapi import Depends, HTTPException, Request

from worklog.deps.auth import _claims, require_auth


class Role(Enum):
    ADMIN = "ADMIN"
    MANAGER = "MANAGER"
    EMPLOYEE = "EMPLOYEE"


_RANK = {
    Role.EMPLOYEE: 1,
    Role.MANAGER: 2,
    Role.ADMIN: 3,
}


def caller_role(request: Request) -> Role:
    claim_role = _claims(request).get("role") or Role.EMPLOYEE.value

    try:
        return Role(str(claim_role).upper())
    except ValueError as exc:
        raise HTTPException(status_code=403, detail="Invalid role claim") from exc


def has_role(request: Request, role: Role) -> bool:
    return _RANK[caller_role(request)] >= _RANK[role]


def require_role(role: Role):
    def dependency(request: Request, _user_id: str = Depends(require_auth)):
        user_role = caller_role(request)

        if _RANK[user_role] < _RANK[role]:
            raise HTTPException(status_code=403, detail="Insufficient role")

        request.state.role = user_role.value
        return user_role

    return dependency
