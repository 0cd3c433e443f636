# backend/pulse/routers/admin.py
from typing import Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Request, Response

from ..auth import Principal, require_role
from ..models import Role, serialize_user

router = APIRouter(prefix="/admin", tags=["admin"])

require_admin = require_role(Role.ADMIN)


@router.get("/users")
def list_users(request: Request, principal: Principal = Depends(require_admin)):
    users = request.app.state.users.list_for_tenant(principal.tenant_id)
    return {"users": [serialize_user(user) for user in users]}


@router.patch("/users/{user_id}/role")
def update_role(
    user_id: str,
    request: Request,
    role: Optional[str] = Body(default=None, embed=True),
    principal: Principal = Depends(require_admin),
):
    try:
        new_role = Role(role)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid role")

    users = request.app.state.users
    user = users.get_in_tenant(user_id, principal.tenant_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found in tenant")

    # a tenant always keeps at least one admin
    if user.role == Role.ADMIN and new_role != Role.ADMIN:
        if users.count_admins(principal.tenant_id) <= 1:
            raise HTTPException(status_code=400, detail="Cannot remove the last admin for this tenant")

    user = users.update_role(user_id, principal.tenant_id, new_role)
    return {"user": serialize_user(user)}


@router.delete("/users/{user_id}", status_code=204)
def delete_user(user_id: str, request: Request, principal: Principal = Depends(require_admin)):
    if user_id == principal.id:
        raise HTTPException(status_code=400, detail="Admins cannot delete themselves")

    users = request.app.state.users
    user = users.get_in_tenant(user_id, principal.tenant_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found in tenant")

    if user.role == Role.ADMIN and users.count_admins(principal.tenant_id) <= 1:
        raise HTTPException(status_code=400, detail="Cannot delete the last admin for this tenant")

    users.delete(user_id, principal.tenant_id)
    return Response(status_code=204)
