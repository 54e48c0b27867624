"""Auth API — local registration, login, current principal.

Learn: Routes for local-credential authentication:
- POST /auth/register → create a LOCAL account (role USER)
- POST /auth/login → username-or-email + password → bearer token
- GET /auth/me → the principal behind the presented token

Errors are raised as the auth taxonomy (CredentialError, RegistrationConflict)
and turned into responses by promptdex.api.errors.
"""

import uuid

from fastapi import APIRouter, Depends
from pydantic import BaseModel, EmailStr, Field
from sqlalchemy.ext.asyncio import AsyncSession

from promptdex.auth.dependencies import get_current_principal
from promptdex.auth.principal import Principal
from promptdex.auth.tokens import TokenService, get_token_service
from promptdex.db.engine import get_db
from promptdex.services.account_service import AccountService

router = APIRouter(prefix="/auth")


# ─── Schemas ─────────────────────────────────────────────


class RegisterRequest(BaseModel):
    username: str = Field(
        ..., min_length=3, max_length=50, pattern=r"^[A-Za-z0-9_.-]+$"
    )
    email: EmailStr
    password: str = Field(min_length=8, max_length=128)


class LoginRequest(BaseModel):
    username: str = Field(..., min_length=1, description="Username or email")
    password: str = Field(..., min_length=1)


class AuthResponse(BaseModel):
    token: str
    username: str


class PrincipalRead(BaseModel):
    id: uuid.UUID
    username: str
    email: str
    provider: str
    roles: list[str]


# ─── Register ────────────────────────────────────────────


@router.post("/register", response_model=PrincipalRead, status_code=201)
async def register(body: RegisterRequest, db: AsyncSession = Depends(get_db)):
    """Create a new local account."""
    principal = await AccountService(db).register(
        username=body.username,
        email=str(body.email),
        password=body.password,
    )
    return principal.public_view()


# ─── Login ───────────────────────────────────────────────


@router.post("/login", response_model=AuthResponse)
async def login(
    body: LoginRequest,
    db: AsyncSession = Depends(get_db),
    tokens: TokenService = Depends(get_token_service),
):
    """Login with username (or email) and password → bearer token."""
    principal = await AccountService(db).authenticate(body.username, body.password)
    return AuthResponse(token=tokens.issue(principal), username=principal.username)


# ─── Current principal ──────────────────────────────────


@router.get("/me", response_model=PrincipalRead)
async def get_me(principal: Principal = Depends(get_current_principal)):
    """Get the current authenticated principal."""
    return principal.public_view()
