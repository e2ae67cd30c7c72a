from pydantic import BaseModel, ConfigDict, EmailStr, Field
from typing import List, Optional

class UserCreate(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=6)
    full_name: Optional[str] = None
    phone: Optional[str] = None

class UserLogin(BaseModel):
    email: EmailStr
    password: str

class Token(BaseModel):
    access_token: str
    token_type: str

class TokenData(BaseModel):
    email: Optional[str] = None

class User(BaseModel):
    id: int
    email: str
    full_name: Optional[str] = None
    phone: Optional[str] = None
    designation: Optional[str] = None
    role_id: Optional[int] = None
    role_name: Optional[str] = None
    is_active: bool

    model_config = ConfigDict(from_attributes=True)

class CurrentUser(User):
    capabilities: List[str] = []

# Role management
class RoleCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=50)

class CapabilityCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    category: Optional[str] = None

class RoleCapabilityAssign(BaseModel):
    capability_ids: List[int]
    granted: bool = True

class UserRoleChange(BaseModel):
    role_id: int

# User administration
class UserAdminCreate(UserCreate):
    role_id: Optional[int] = None
    designation: Optional[str] = None

class UserAdminUpdate(BaseModel):
    email: Optional[EmailStr] = None
    password: Optional[str] = Field(None, min_length=6)
    role_id: Optional[int] = None
    full_name: Optional[str] = None
    phone: Optional[str] = None
    designation: Optional[str] = None
    is_active: Optional[bool] = None

class ProfileUpdate(BaseModel):
    full_name: Optional[str] = None
    phone: Optional[str] = None
    designation: Optional[str] = None
