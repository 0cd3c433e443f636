# backend/pulse/routers/auth.py
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlmodel import SQLModel

from ..auth import Principal, get_principal, hash_password, issue_token, verify_password
from ..models import Role, User, serialize_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


class RegisterRequest(SQLModel):
    email: Optional[str] = None
    password: Optional[str] = None
    name: Optional[str] = None
    tenantId: Optional[str] = None
    role: Optional[str] = None


class LoginRequest(SQLModel):
    email: Optional[str] = None
    password: Optional[str] = None


def _role_or_default(value: Optional[str]) -> Role:
    try:
        return Role(value)
    except ValueError:
        return Role.EDITOR


@router.post("/register", status_code=201)
def register(body: RegisterRequest, request: Request):
    if not (body.email and body.password and body.name and body.tenantId):
        raise HTTPException(status_code=400, detail="Missing required fields")

    state = request.app.state
    if state.users.get_by_email(body.email):
        raise HTTPException(status_code=409, detail="Email already registered")

    user = state.users.create(
        User(
            email=body.email,
            password_hash=hash_password(body.password),
            name=body.name,
            tenant_id=body.tenantId,
            role=_role_or_default(body.role),
        )
    )
    logger.info("registered user %s in tenant %s", user.id, user.tenant_id)
    return {"user": serialize_user(user), "token": issue_token(user, state.settings)}


@router.post("/login")
def login(body: LoginRequest, request: Request):
    if not body.email or not body.password:
        raise HTTPException(status_code=400, detail="Email and password required")

    state = request.app.state
    user = state.users.get_by_email(body.email)
    if not user or not verify_password(body.password, user.password_hash):
        raise HTTPException(status_code=401, detail="Invalid credentials")
    return {"user": serialize_user(user), "token": issue_token(user, state.settings)}


@router.get("/me")
def me(request: Request, principal: Principal = Depends(get_principal)):
    user = request.app.state.users.get(principal.id)
    return {"user": serialize_user(user)}
