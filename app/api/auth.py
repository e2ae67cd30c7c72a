from datetime import timedelta
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from app.database import get_db
from app.dependencies.dependencies import get_current_user
from app.schemas.auth import UserCreate, UserLogin, Token, User, CurrentUser
from app.services.auth_service import auth_service
from app.services.policy import capability_policy
from app.models.user import User as UserModel
from app.config import settings
from app.errors import LMSError
import logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["authentication"])

@router.post("/register", response_model=User, status_code=status.HTTP_201_CREATED)
async def register_user(user_data: UserCreate, db: Session = Depends(get_db)):
    try:
        return auth_service.register_user(db, user_data)
    except LMSError as e:
        logger.warning(f"Registration rejected for {user_data.email}: {str(e)}")
        raise HTTPException(status_code=e.status_code, detail=str(e))

@router.post("/login", response_model=Token)
async def login_user(login_data: UserLogin, db: Session = Depends(get_db)):
    user = auth_service.authenticate_user(db, login_data.email, login_data.password)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )

    access_token_expires = timedelta(minutes=settings.access_token_expire_minutes)
    access_token = auth_service.create_access_token(
        data={"sub": user.email}, expires_delta=access_token_expires
    )
    return {"access_token": access_token, "token_type": "bearer"}

@router.get("/me", response_model=CurrentUser)
async def read_users_me(
    current_user: UserModel = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    capabilities = capability_policy.capabilities_for(db, current_user)
    return CurrentUser(
        **User.model_validate(current_user).model_dump(),
        capabilities=sorted(capabilities)
    )
