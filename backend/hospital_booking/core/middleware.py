from fastapi import Request, HTTPException, Depends
from jose import JWTError
from typing import Optional, Dict, Any

from .auth import decode_access_token
from hospital_booking.db.session import get_db_session

# List of paths that should be excluded from authentication checks
PUBLIC_PATHS = [
    "/health",
    "/docs",
    "/openapi.json",
    "/redoc"
]


def _caller_from_token(token: str) -> Optional[Dict[str, Any]]:
    try:
        token_data = decode_access_token(token)
    except JWTError:
        return None
    if token_data.get("sub") is None:
        return None
    return {
        "user_id": int(token_data["sub"]),
        "role": token_data.get("role")
    }


async def verify_token_middleware(request: Request, call_next):
    """
    Middleware to check the session cookie or bearer token and add the caller
    identity to request state. Unauthenticated requests are not blocked here.
    """
    request.state.user = None

    # Skip authentication for public paths
    if any(request.url.path.startswith(public_path) for public_path in PUBLIC_PATHS):
        return await call_next(request)

    session_cookie = request.cookies.get("session")
    if session_cookie:
        request.state.user = _caller_from_token(session_cookie)
    # Check for Authorization header if session cookie is not present
    else:
        auth_header = request.headers.get("Authorization")
        if auth_header and auth_header.startswith("Bearer "):
            token = auth_header.split(" ")[1]
            request.state.user = _caller_from_token(token)

    response = await call_next(request)
    return response

# FastAPI dependency for protected routes
def get_current_user(request: Request):
    """
    Dependency to use in FastAPI route functions that require authentication.
    This will raise an HTTPException if the user is not authenticated.
    """
    if not getattr(request.state, "user", None):
        raise HTTPException(status_code=401, detail="Not authenticated")
    return request.state.user

def require_roles(roles: list):
    """
    Factory function to create a dependency that requires specific roles.
    Usage: @router.post("/x", dependencies=[Depends(require_roles(["admin"]))])
    """
    def _require_roles(user: dict = Depends(get_current_user)):
        if user["role"] not in roles:
            raise HTTPException(status_code=403, detail="Not enough permissions")
        return user

    return _require_roles

# Get a database session dependency
async def get_db(request: Request):
    """Yield an async SQLAlchemy session (dependency)."""
    async for session in get_db_session(request):
        yield session
