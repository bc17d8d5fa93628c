import os
from typing import Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from worklog.services.auth_service import create_access_token

router = APIRouter(prefix="/auth", tags=["auth"])


class TokenRequest(BaseModel):
    user_id: str
    role: Optional[str] = None


@router.post("/token")
def issue_token(payload: TokenRequest):
    env = os.getenv("ENV", "dev").lower()
    if env not in {"dev", "local", "test"}:
        raise HTTPException(status_code=404, detail="Not Found")
    try:
        token = create_access_token(user_id=str(payload.user_id), role=payload.role)
    except Exception as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    return {
        "access_token": token,
        "token_type": "bearer",
    }
