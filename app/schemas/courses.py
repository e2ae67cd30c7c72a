from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional
from datetime import datetime

class CategoryCreate(BaseModel):
    name: str = Field(..., min_length=1)

class CategoryResponse(BaseModel):
    id: int
    name: str

    model_config = ConfigDict(from_attributes=True)

class CourseCreate(BaseModel):
    title: str = Field(..., min_length=1)
    description: Optional[str] = None
    category_ids: List[int] = []

class CourseUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    # Replaces the whole category set when present
    category_ids: Optional[List[int]] = None

class ModuleCreate(BaseModel):
    title: str = Field(..., min_length=1)
    content: Optional[str] = None
    video_link: Optional[str] = None
    order: Optional[int] = None

class ModuleUpdate(BaseModel):
    title: Optional[str] = None
    content: Optional[str] = None
    video_link: Optional[str] = None
    order: Optional[int] = None

class ModuleReorder(BaseModel):
    module_ids: List[int]

class ModuleCompletion(BaseModel):
    completed: bool

class ModuleProgressResponse(BaseModel):
    id: int
    user_id: int
    module_id: int
    completed: bool
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

class EnrollRequest(BaseModel):
    trainee_user_id: Optional[int] = None

class ModuleResponse(BaseModel):
    id: int
    course_id: int
    title: str
    content: Optional[str] = None
    video_link: Optional[str] = None
    order: int

    model_config = ConfigDict(from_attributes=True)

class CourseResponse(BaseModel):
    id: int
    title: str
    description: Optional[str] = None
    created_by_id: Optional[int] = None
    created_at: Optional[datetime] = None
    modules: List[ModuleResponse] = []
    categories: List[CategoryResponse] = []
    enrollment_count: int = 0

    model_config = ConfigDict(from_attributes=True)
