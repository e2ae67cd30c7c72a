from typing import List, Optional
from sqlalchemy.orm import Session
from app.models.user import User, Role
from app.schemas.auth import UserAdminCreate, UserAdminUpdate, ProfileUpdate
from app.services.auth_service import auth_service
from app.utils.patch import FieldRule, apply_patch, non_blank
from app.errors import EmailAlreadyRegistered, LMSError, RoleNotFound, UserNotFound
import logging

logger = logging.getLogger(__name__)

PROFILE_RULES = {
    "full_name": FieldRule(nullable=True),
    "phone": FieldRule(nullable=True),
    "designation": FieldRule(nullable=True),
}

# password is hashed separately and role_id is checked against the roles table
ADMIN_RULES = {
    **PROFILE_RULES,
    "email": FieldRule(check=non_blank),
    "role_id": FieldRule(nullable=True),
    "is_active": FieldRule(),
}

class UserService:

    @staticmethod
    def get_user_or_404(db: Session, user_id: int) -> User:
        user = db.query(User).filter(User.id == user_id).first()
        if not user:
            raise UserNotFound()
        return user

    @staticmethod
    def _ensure_role(db: Session, role_id: Optional[int]) -> None:
        if role_id is not None and not db.query(Role.id).filter(Role.id == role_id).first():
            raise RoleNotFound()

    @staticmethod
    def list_users(db: Session) -> List[User]:
        return db.query(User).order_by(User.id).all()

    @staticmethod
    def search_users(db: Session, query: str) -> List[User]:
        """Case-insensitive substring match on email"""
        return db.query(User).filter(
            User.email.ilike(f"%{query}%")
        ).order_by(User.email).all()

    @staticmethod
    def create_user(db: Session, user_data: UserAdminCreate) -> User:
        if auth_service.get_user_by_email(db, user_data.email):
            raise EmailAlreadyRegistered()
        UserService._ensure_role(db, user_data.role_id)

        user = User(
            email=user_data.email,
            password_hash=auth_service.get_password_hash(user_data.password),
            full_name=user_data.full_name,
            phone=user_data.phone,
            designation=user_data.designation,
            role_id=user_data.role_id
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        logger.info(f"User created by administrator: {user.email}")
        return user

    @staticmethod
    def update_user(db: Session, user_id: int, patch: UserAdminUpdate) -> User:
        user = UserService.get_user_or_404(db, user_id)
        fields = patch.model_dump(exclude_unset=True)

        if fields.get("email") and fields["email"] != user.email:
            if auth_service.get_user_by_email(db, fields["email"]):
                raise EmailAlreadyRegistered()
        if "role_id" in fields:
            UserService._ensure_role(db, fields["role_id"])

        changed = apply_patch(user, patch, ADMIN_RULES)
        if fields.get("password"):
            user.password_hash = auth_service.get_password_hash(fields["password"])
            changed.append("password")

        db.commit()
        db.refresh(user)
        logger.info(f"User {user_id} updated: {changed}")
        return user

    @staticmethod
    def delete_user(db: Session, user_id: int, acting_user_id: int) -> None:
        if user_id == acting_user_id:
            raise LMSError("You cannot delete your own account")
        user = UserService.get_user_or_404(db, user_id)
        try:
            db.delete(user)
            db.commit()
        except Exception as e:
            logger.error(f"Error deleting user {user_id}: {str(e)}")
            db.rollback()
            raise
        logger.info(f"User {user_id} deleted")

    @staticmethod
    def update_profile(db: Session, user: User, patch: ProfileUpdate) -> User:
        apply_patch(user, patch, PROFILE_RULES)
        db.commit()
        db.refresh(user)
        return user

user_service = UserService()
