from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from app.database import get_db
from app.api.errors import domain_error, internal_error
from app.dependencies.dependencies import require_capability
from app.models.user import User
from app.schemas.auth import (
    RoleCreate, CapabilityCreate, RoleCapabilityAssign, UserRoleChange, User as UserSchema
)
from app.services.policy import capability_policy
from app.errors import LMSError
import logging

logger = logging.getLogger(__name__)

router = APIRouter(tags=["roles"])

@router.get("/roles")
async def list_roles(
    db: Session = Depends(get_db),
    current_user: User = Depends(require_capability("view_roles"))
):
    return {"success": True, "data": capability_policy.list_roles(db)}

@router.post("/roles", status_code=status.HTTP_201_CREATED)
async def create_role(
    role_data: RoleCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_capability("create_roles"))
):
    try:
        role = capability_policy.create_role(db, role_data.name)
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Role already exists")
    return {"success": True, "data": {"id": role.id, "name": role.name}}

@router.get("/capabilities")
async def list_capabilities(
    db: Session = Depends(get_db),
    current_user: User = Depends(require_capability("view_capabilities"))
):
    capabilities = capability_policy.list_capabilities(db)
    return {
        "success": True,
        "data": [{"id": c.id, "name": c.name, "category": c.category} for c in capabilities]
    }

@router.post("/capabilities", status_code=status.HTTP_201_CREATED)
async def create_capability(
    capability_data: CapabilityCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_capability("create_capabilities"))
):
    try:
        capability = capability_policy.create_capability(
            db, capability_data.name, capability_data.category
        )
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Capability already exists")
    return {
        "success": True,
        "data": {"id": capability.id, "name": capability.name, "category": capability.category}
    }

@router.post("/roles/{role_id}/capabilities")
async def assign_capabilities(
    role_id: int,
    assignment: RoleCapabilityAssign,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_capability("assign_capabilities_to_role"))
):
    """Grant (granted=true) or revoke capabilities on a role"""
    try:
        result = capability_policy.set_role_capabilities(
            db, role_id, assignment.capability_ids, assignment.granted
        )
        return {"success": True, "data": result}
    except LMSError as e:
        raise domain_error(f"assign capabilities to role {role_id}", e)
    except Exception as e:
        raise internal_error("assign capabilities", e)

@router.put("/users/{user_id}/role")
async def change_user_role(
    user_id: int,
    role_change: UserRoleChange,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_capability("change_user_role"))
):
    try:
        user = capability_policy.change_user_role(db, user_id, role_change.role_id)
        return {"success": True, "data": UserSchema.model_validate(user)}
    except LMSError as e:
        raise domain_error("change user role", e)

