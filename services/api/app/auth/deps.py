from fastapi import Depends, Header, HTTPException

from app.auth.session import CaptureSession, NotAuthenticatedError, SessionRegistry, get_registry


def bearer_token(authorization: str | None = Header(default=None)) -> str | None:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


async def require_session(
    token: str | None = Depends(bearer_token),
    registry: SessionRegistry = Depends(get_registry),
) -> CaptureSession:
    try:
        return registry.get(token)
    except NotAuthenticatedError:
        raise HTTPException(status_code=401, detail="Not authenticated")
