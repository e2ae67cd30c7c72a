from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from app.database import get_db
from app.api.errors import domain_error, internal_error
from app.dependencies.dependencies import require_capability
from app.models.user import User
from app.schemas.auth import UserAdminCreate, UserAdminUpdate, ProfileUpdate, User as UserSchema
from app.services.user_service import user_service
from app.errors import LMSError
import logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/users", tags=["users"])

# Own profile (declared before /{user_id})
@router.get("/me/profile")
async def get_own_profile(
    current_user: User = Depends(require_capability("view_own_profile"))
):
    return {"success": True, "data": UserSchema.model_validate(current_user)}

@router.put("/me/profile")
async def update_own_profile(
    profile: ProfileUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_capability("update_own_profile"))
):
    try:
        user = user_service.update_profile(db, current_user, profile)
        return {
            "success": True,
            "message": "Profile updated successfully",
            "data": UserSchema.model_validate(user)
        }
    except LMSError as e:
        raise domain_error("update profile", e)

@router.get("/search/{query}")
async def search_users(
    query: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_capability("search_users"))
):
    users = user_service.search_users(db, query)
    return {"success": True, "count": len(users), "data": [UserSchema.model_validate(u) for u in users]}

# Administration
@router.post("", status_code=status.HTTP_201_CREATED)
async def create_user(
    user_data: UserAdminCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_capability("create_user"))
):
    try:
        user = user_service.create_user(db, user_data)
        return {"success": True, "data": UserSchema.model_validate(user)}
    except LMSError as e:
        raise domain_error("create user", e)
    except Exception as e:
        raise internal_error("create user", e)

@router.get("")
async def list_users(
    db: Session = Depends(get_db),
    current_user: User = Depends(require_capability("view_all_users"))
):
    users = user_service.list_users(db)
    return {"success": True, "count": len(users), "data": [UserSchema.model_validate(u) for u in users]}

@router.get("/{user_id}")
async def get_user(
    user_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_capability("view_user_by_id"))
):
    try:
        user = user_service.get_user_or_404(db, user_id)
        return {"success": True, "data": UserSchema.model_validate(user)}
    except LMSError as e:
        raise domain_error("get user", e)

@router.put("/{user_id}")
async def update_user(
    user_id: int,
    patch: UserAdminUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_capability("update_user"))
):
    try:
        user = user_service.update_user(db, user_id, patch)
        return {"success": True, "data": UserSchema.model_validate(user)}
    except LMSError as e:
        raise domain_error("update user", e)
    except Exception as e:
        raise internal_error("update user", e)

@router.delete("/{user_id}")
async def delete_user(
    user_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_capability("delete_user"))
):
    try:
        user_service.delete_user(db, user_id, current_user.id)
        return {"success": True, "message": "User deleted successfully"}
    except LMSError as e:
        raise domain_error("delete user", e)
    except Exception as e:
        raise internal_error("delete user", e)
