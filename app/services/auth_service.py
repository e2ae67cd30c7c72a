from datetime import datetime, timedelta, timezone
from typing import Optional
from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy.orm import Session
from app.models.user import User, Role, RoleName
from app.schemas.auth import TokenData, UserCreate
from app.config import settings
from app.errors import EmailAlreadyRegistered, RoleNotFound
import logging

logger = logging.getLogger(__name__)

pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=settings.bcrypt_rounds
)

class AuthService:

    @staticmethod
    def verify_password(plain_password: str, hashed_password: str) -> bool:
        try:
            return pwd_context.verify(plain_password, hashed_password)
        except ValueError as e:
            logger.warning(f"Password verification error: {e}")
            return False

    @staticmethod
    def get_password_hash(password: str) -> str:
        return pwd_context.hash(password)

    @staticmethod
    def authenticate_user(db: Session, email: str, password: str) -> Optional[User]:
        user = db.query(User).filter(User.email == email).first()
        if not user or not user.is_active:
            return None
        if not AuthService.verify_password(password, user.password_hash):
            return None
        return user

    @staticmethod
    def register_user(db: Session, user_data: UserCreate) -> User:
        """Self-registration always lands on the trainee role"""
        if AuthService.get_user_by_email(db, user_data.email):
            raise EmailAlreadyRegistered()

        role = db.query(Role).filter(Role.name == RoleName.trainee.value).first()
        if not role:
            raise RoleNotFound("Default role not found")

        user = User(
            email=user_data.email,
            password_hash=AuthService.get_password_hash(user_data.password),
            full_name=user_data.full_name,
            phone=user_data.phone,
            role_id=role.id
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        logger.info(f"User registered: {user.email}")
        return user

    @staticmethod
    def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
        to_encode = data.copy()
        if expires_delta:
            expire = datetime.now(timezone.utc) + expires_delta
        else:
            expire = datetime.now(timezone.utc) + timedelta(minutes=15)
        to_encode.update({"exp": expire})
        return jwt.encode(to_encode, settings.secret_key, algorithm=settings.algorithm)

    @staticmethod
    def verify_token(token: str, credentials_exception) -> TokenData:
        try:
            payload = jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
            email: str = payload.get("sub")
            if email is None:
                raise credentials_exception
            token_data = TokenData(email=email)
        except JWTError:
            raise credentials_exception
        return token_data

    @staticmethod
    def decode_token(token: str) -> Optional[TokenData]:
        """Non-raising variant used where there is no HTTP response to shape"""
        try:
            payload = jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
        except JWTError:
            return None
        email = payload.get("sub")
        return TokenData(email=email) if email else None

    @staticmethod
    def get_user_by_email(db: Session, email: str) -> Optional[User]:
        return db.query(User).filter(User.email == email).first()

auth_service = AuthService()
