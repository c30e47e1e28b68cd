from pydantic import BaseModel


class LoginRequest(BaseModel):
    username: str
    password: str


class RegisterRequest(BaseModel):
    firstName: str = ""
    lastName: str = ""
    email: str = ""
    password: str = ""
    confirmPassword: str = ""


class TokenSet(BaseModel):
    """Tokens from a redirect login the browser already completed."""
    access_token: str
    expires_in: int
    refresh_token: str | None = None
    token_type: str = "Bearer"


class SessionResponse(BaseModel):
    authenticated: bool
    access_token: str | None = None
    expires_in: int | None = None
    refresh_token: str | None = None
    token_type: str | None = None
