from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from app.database import get_db
from app.api.errors import domain_error, internal_error
from app.dependencies.dependencies import require_capability
from app.models.user import User
from app.schemas.courses import (
    CategoryCreate, CategoryResponse, CourseCreate, CourseUpdate, CourseResponse,
    ModuleCreate, ModuleUpdate, ModuleReorder, ModuleCompletion, ModuleResponse,
    ModuleProgressResponse, EnrollRequest
)
from app.services.course_service import course_service
from app.errors import LMSError
import logging

logger = logging.getLogger(__name__)

router = APIRouter(tags=["courses"])

# Courses
@router.get("/courses")
async def list_courses(
    db: Session = Depends(get_db),
    current_user: User = Depends(require_capability("view_courses"))
):
    courses = course_service.list_courses(db)
    return {
        "success": True,
        "count": len(courses),
        "data": [CourseResponse.model_validate(c) for c in courses]
    }

@router.get("/courses/{course_id}")
async def get_course(
    course_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_capability("view_single_course"))
):
    try:
        course = course_service.get_course(db, course_id)
        return {"success": True, "data": CourseResponse.model_validate(course)}
    except LMSError as e:
        raise domain_error("get course", e)

@router.post("/courses", status_code=status.HTTP_201_CREATED)
async def create_course(
    course_data: CourseCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_capability("create_courses"))
):
    try:
        course = course_service.create_course(db, current_user.id, course_data)
        return {"success": True, "data": CourseResponse.model_validate(course_service.get_course(db, course.id))}
    except LMSError as e:
        raise domain_error("create course", e)
    except Exception as e:
        raise internal_error("create course", e)

@router.put("/courses/{course_id}")
async def update_course(
    course_id: int,
    patch: CourseUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_capability("update_course"))
):
    try:
        course_service.update_course(db, course_id, current_user, patch)
        return {"success": True, "data": CourseResponse.model_validate(course_service.get_course(db, course_id))}
    except LMSError as e:
        raise domain_error("update course", e)
    except Exception as e:
        raise internal_error("update course", e)

@router.delete("/courses/{course_id}")
async def delete_course(
    course_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_capability("delete_course"))
):
    try:
        course_service.delete_course(db, course_id, current_user)
        return {"success": True, "message": "Course deleted successfully"}
    except LMSError as e:
        raise domain_error("delete course", e)
    except Exception as e:
        raise internal_error("delete course", e)

# Enrollment
@router.post("/courses/{course_id}/enroll", status_code=status.HTTP_201_CREATED)
async def enroll(
    course_id: int,
    request: EnrollRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_capability("enroll_courses"))
):
    """Enroll yourself, or the user given as trainee_user_id"""
    trainee_id = request.trainee_user_id or current_user.id
    try:
        enrollment = course_service.enroll(db, course_id, trainee_id, current_user.id)
        return {
            "success": True,
            "message": "Enrolled successfully",
            "data": {
                "id": enrollment.id,
                "user_id": enrollment.user_id,
                "course_id": enrollment.course_id,
                "enrolled_by_id": enrollment.enrolled_by_id,
                "enrolled_at": enrollment.enrolled_at,
            }
        }
    except LMSError as e:
        raise domain_error("enroll", e)
    except Exception as e:
        raise internal_error("enroll", e)

@router.delete("/courses/{course_id}/enroll")
async def unenroll(
    course_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_capability("unenroll_courses"))
):
    try:
        course_service.unenroll(db, course_id, current_user.id)
        return {"success": True, "message": "Unenrolled successfully"}
    except LMSError as e:
        raise domain_error("unenroll", e)

@router.get("/users/{user_id}/enrolled-courses")
async def get_enrolled_courses(
    user_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_capability("view_enrolled_courses_by_user_id"))
):
    courses = course_service.get_enrolled_courses(db, user_id)
    return {"success": True, "count": len(courses), "data": courses}

# Modules
@router.get("/courses/{course_id}/modules")
async def list_modules(
    course_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_capability("view_modules"))
):
    try:
        modules = course_service.list_modules(db, course_id)
        return {"success": True, "data": [ModuleResponse.model_validate(m) for m in modules]}
    except LMSError as e:
        raise domain_error("list modules", e)

@router.post("/courses/{course_id}/modules", status_code=status.HTTP_201_CREATED)
async def create_module(
    course_id: int,
    module_data: ModuleCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_capability("create_modules"))
):
    try:
        module = course_service.create_module(db, course_id, current_user, module_data)
        return {"success": True, "data": ModuleResponse.model_validate(module)}
    except LMSError as e:
        raise domain_error("create module", e)
    except Exception as e:
        raise internal_error("create module", e)

@router.put("/courses/{course_id}/modules/reorder")
async def reorder_modules(
    course_id: int,
    reorder: ModuleReorder,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_capability("reorder_module"))
):
    try:
        modules = course_service.reorder_modules(db, course_id, current_user, reorder.module_ids)
        return {"success": True, "data": [ModuleResponse.model_validate(m) for m in modules]}
    except LMSError as e:
        raise domain_error("reorder modules", e)

@router.get("/modules/{module_id}")
async def get_module(
    module_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_capability("get_single_module"))
):
    try:
        module = course_service.get_module_or_404(db, module_id)
        return {"success": True, "data": ModuleResponse.model_validate(module)}
    except LMSError as e:
        raise domain_error("get module", e)

@router.put("/modules/{module_id}")
async def update_module(
    module_id: int,
    patch: ModuleUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_capability("update_module"))
):
    try:
        module = course_service.update_module(db, module_id, current_user, patch)
        return {"success": True, "data": ModuleResponse.model_validate(module)}
    except LMSError as e:
        raise domain_error("update module", e)

@router.delete("/modules/{module_id}")
async def delete_module(
    module_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_capability("delete_module"))
):
    try:
        course_service.delete_module(db, module_id, current_user)
        return {"success": True, "message": "Module deleted successfully"}
    except LMSError as e:
        raise domain_error("delete module", e)

@router.patch("/modules/{module_id}/status")
async def set_module_completion(
    module_id: int,
    completion: ModuleCompletion,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_capability("update_module_completion_status"))
):
    """Mark a module completed (or pending again) for the current user"""
    try:
        progress = course_service.set_module_completion(db, module_id, current_user.id, completion.completed)
        return {
            "success": True,
            "message": "Module status updated",
            "data": ModuleProgressResponse.model_validate(progress)
        }
    except LMSError as e:
        raise domain_error("update module status", e)
    except Exception as e:
        raise internal_error("update module status", e)

# Categories
@router.get("/categories")
async def list_categories(
    db: Session = Depends(get_db),
    current_user: User = Depends(require_capability("view_course_categories"))
):
    categories = course_service.list_categories(db)
    return {"success": True, "data": [CategoryResponse.model_validate(c) for c in categories]}

@router.post("/categories", status_code=status.HTTP_201_CREATED)
async def create_category(
    category_data: CategoryCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_capability("create_course_categories"))
):
    try:
        category = course_service.create_category(db, category_data)
        return {"success": True, "data": CategoryResponse.model_validate(category)}
    except LMSError as e:
        raise domain_error("create category", e)
