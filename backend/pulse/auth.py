# backend/pulse/auth.py
"""Password hashing, signed bearer tokens and the request principal."""
import base64
import hashlib
import hmac
import json
import logging
import secrets
import time
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, HTTPException, Request

from .config import Settings
from .models import Role, User
from .repository import UserRepository

logger = logging.getLogger(__name__)

PBKDF2_ITERATIONS = 200_000


class AuthError(Exception):
    pass


@dataclass(frozen=True)
class Principal:
    id: str
    tenant_id: str
    role: Role
    email: str
    name: str

    @classmethod
    def from_user(cls, user: User) -> "Principal":
        return cls(id=user.id, tenant_id=user.tenant_id, role=Role(user.role), email=user.email, name=user.name)


# --- passwords ---

def hash_password(password: str) -> str:
    salt = secrets.token_hex(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode(), salt.encode(), PBKDF2_ITERATIONS)
    return f"pbkdf2_sha256${PBKDF2_ITERATIONS}${salt}${digest.hex()}"


def verify_password(password: str, stored: str) -> bool:
    try:
        algorithm, iterations, salt, expected = stored.split("$")
    except ValueError:
        return False
    if algorithm != "pbkdf2_sha256":
        return False
    digest = hashlib.pbkdf2_hmac("sha256", password.encode(), salt.encode(), int(iterations))
    return hmac.compare_digest(digest.hex(), expected)


# --- tokens ---

def _b64encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode()


def _b64decode(text: str) -> bytes:
    return base64.urlsafe_b64decode(text + "=" * (-len(text) % 4))


def _sign(body: str, secret_key: str) -> str:
    return _b64encode(hmac.new(secret_key.encode(), body.encode(), hashlib.sha256).digest())


def issue_token(user: User, settings: Settings, now: Optional[float] = None) -> str:
    issued = int(now if now is not None else time.time())
    payload = {
        "sub": user.id,
        "tenantId": user.tenant_id,
        "role": Role(user.role).value,
        "email": user.email,
        "exp": issued + settings.token_ttl_seconds,
    }
    body = _b64encode(json.dumps(payload, separators=(",", ":")).encode())
    return f"{body}.{_sign(body, settings.secret_key)}"


def decode_token(token: str, settings: Settings, now: Optional[float] = None) -> dict:
    try:
        body, signature = token.split(".")
    except ValueError:
        raise AuthError("Malformed token")
    # bytes on both sides; compare_digest rejects non-ASCII str
    try:
        expected = _sign(body, settings.secret_key).encode("ascii")
        valid = hmac.compare_digest(signature.encode("utf-8"), expected)
    except UnicodeError:
        raise AuthError("Malformed token")
    if not valid:
        raise AuthError("Invalid token signature")
    try:
        payload = json.loads(_b64decode(body))
    except (ValueError, TypeError):
        raise AuthError("Malformed token")
    if not isinstance(payload, dict) or not isinstance(payload.get("exp"), (int, float)):
        raise AuthError("Malformed token")
    if payload["exp"] < (now if now is not None else time.time()):
        raise AuthError("Token expired")
    return payload


def resolve_principal(token: Optional[str], settings: Settings, users: UserRepository) -> Principal:
    if not token:
        raise AuthError("Authentication token missing")
    payload = decode_token(token, settings)
    user = users.get(payload.get("sub", ""))
    if user is None:
        raise AuthError("User not found")
    return Principal.from_user(user)


def token_from_request(request: Request) -> Optional[str]:
    header = request.headers.get("authorization", "")
    if header.startswith("Bearer "):
        return header[len("Bearer "):]
    # <video> tags cannot set headers
    return request.query_params.get("token")


# --- dependencies ---

def get_principal(request: Request) -> Principal:
    state = request.app.state
    try:
        return resolve_principal(token_from_request(request), state.settings, state.users)
    except AuthError as exc:
        logger.info("rejected request to %s: %s", request.url.path, exc)
        raise HTTPException(status_code=401, detail=str(exc))


def require_role(*roles: Role):
    def dependency(principal: Principal = Depends(get_principal)) -> Principal:
        if principal.role not in roles:
            raise HTTPException(status_code=403, detail="Forbidden: insufficient role")
        return principal

    return dependency
