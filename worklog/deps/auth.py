from fastapi import HTTPException, Request

from worklog.services.auth_service import verify_token


def _parse_bearer_token(request: Request) -> str:
    auth_header = request.headers.get("Authorization")
    if not auth_header:
        raise HTTPException(status_code=401, detail="Missing Authorization header")

    parts = auth_header.split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "bearer" or not parts[1].strip():
        raise HTTPException(status_code=401, detail="Invalid Authorization header")

    return parts[1].strip()


def _claims(request: Request) -> dict:
    cached = getattr(request.state, "claims", None)
    if cached is not None:
        return cached

    token = _parse_bearer_token(request)
    try:
        claims = verify_token(token)
    except ValueError as exc:
        raise HTTPException(status_code=401, detail=str(exc)) from exc

    request.state.claims = claims
    return claims


def require_auth(request: Request) -> str:
    """Authenticated user id (the token's subject)."""
    claims = _claims(request)
    user_id = str(claims.get("sub"))
    request.state.user_id = user_id
    return user_id
