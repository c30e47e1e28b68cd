import logging
from fastapi import APIRouter, Depends, HTTPException
from starlette.concurrency import run_in_threadpool
from app.auth import keycloak
from app.auth.deps import bearer_token
from app.auth.keycloak import IdentityProviderError, RegistrationError
from app.auth.session import NotAuthenticatedError, SessionContext, SessionRegistry, get_registry
from app.schemas.auth import LoginRequest, RegisterRequest, SessionResponse, TokenSet

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/auth", tags=["auth"])


def _session_response(context: SessionContext) -> SessionResponse:
    return SessionResponse(
        authenticated=context.is_authenticated,
        access_token=context.access_token,
        expires_in=context.expires_in,
        refresh_token=context.refresh_token,
        token_type=context.token_type,
    )


async def _open(registry: SessionRegistry, tokens: dict) -> SessionResponse:
    context = SessionContext.from_token_response(tokens)
    try:
        await registry.open(context)
    except NotAuthenticatedError:
        logger.warning("auth: identity provider returned an unusable token set")
        raise HTTPException(status_code=401, detail="Login failed")
    return _session_response(context)


@router.post("/login", response_model=SessionResponse)
async def login(body: LoginRequest, registry: SessionRegistry = Depends(get_registry)):
    logger.info("auth/login: username=%s", body.username)
    try:
        tokens = await run_in_threadpool(keycloak.login_with_password, body.username, body.password)
    except IdentityProviderError as e:
        raise HTTPException(status_code=401, detail=str(e))
    return await _open(registry, tokens)


@router.post("/register", response_model=SessionResponse)
async def register(body: RegisterRequest, registry: SessionRegistry = Depends(get_registry)):
    logger.info("auth/register: email=%s", body.email)
    try:
        keycloak.validate_registration(
            body.firstName, body.lastName, body.email, body.password, body.confirmPassword
        )
        await run_in_threadpool(
            keycloak.register_user, body.firstName, body.lastName, body.email, body.password
        )
    except RegistrationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except IdentityProviderError as e:
        logger.exception("auth/register: error %s", e)
        raise HTTPException(status_code=502, detail="Registration failed")
    try:
        tokens = await run_in_threadpool(keycloak.login_with_password, body.email, body.password)
    except IdentityProviderError as e:
        raise HTTPException(status_code=401, detail=str(e))
    return await _open(registry, tokens)


@router.post("/session", response_model=SessionResponse)
async def adopt_session(body: TokenSet, registry: SessionRegistry = Depends(get_registry)):
    """Open a capture session for tokens obtained through the Keycloak redirect login."""
    try:
        await run_in_threadpool(keycloak.fetch_userinfo, body.access_token)
    except IdentityProviderError as e:
        logger.info("auth/session: token not accepted by identity provider: %s", e)
        status = 502 if e.status_code is None else 401
        raise HTTPException(status_code=status, detail=str(e))
    return await _open(registry, body.model_dump())


@router.get("/session", response_model=SessionResponse)
async def get_session(
    token: str | None = Depends(bearer_token),
    registry: SessionRegistry = Depends(get_registry),
):
    try:
        session = registry.get(token)
    except NotAuthenticatedError:
        return SessionResponse(authenticated=False)
    return _session_response(session.context)


@router.post("/logout")
async def logout(
    token: str | None = Depends(bearer_token),
    registry: SessionRegistry = Depends(get_registry),
):
    found = registry.logout(token)
    logger.info("auth/logout: found=%s", found)
    return {"ok": True}
