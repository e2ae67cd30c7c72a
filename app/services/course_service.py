from typing import List, Dict, Any
from sqlalchemy import func
from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError
from app.models.courses import Course, CourseCategory, CourseModule, Enrollment, ModuleProgress
from app.models.user import User
from app.schemas.courses import CategoryCreate, CourseCreate, CourseUpdate, ModuleCreate, ModuleUpdate
from app.services.policy import capability_policy
from app.utils.patch import FieldRule, apply_patch, non_blank
from app.errors import (
    AlreadyEnrolled, CategoryExists, CategoryNotFound, CourseNotFound, ForbiddenError,
    InvalidPatch, ModuleNotFound, NotEnrolled, NotFoundError, UserNotFound
)
import logging

logger = logging.getLogger(__name__)

COURSE_RULES = {
    "title": FieldRule(check=non_blank),
    "description": FieldRule(nullable=True),
}

MODULE_RULES = {
    "title": FieldRule(check=non_blank),
    "content": FieldRule(nullable=True),
    "video_link": FieldRule(nullable=True),
    "order": FieldRule(check=lambda v: None if v >= 1 else "must be at least 1"),
}

class CourseService:

    @staticmethod
    def _course_summary(db: Session, course: Course) -> Dict[str, Any]:
        enrollment_count = db.query(func.count(Enrollment.id)).filter(
            Enrollment.course_id == course.id
        ).scalar()
        return {
            "id": course.id,
            "title": course.title,
            "description": course.description,
            "created_by_id": course.created_by_id,
            "created_at": course.created_at,
            "modules": course.modules,
            "categories": course.categories,
            "enrollment_count": enrollment_count or 0,
        }

    @staticmethod
    def get_course_or_404(db: Session, course_id: int) -> Course:
        course = db.query(Course).filter(Course.id == course_id).first()
        if not course:
            raise CourseNotFound()
        return course

    @staticmethod
    def _ensure_owner(course: Course, user: User) -> None:
        if course.created_by_id != user.id and not capability_policy.is_admin(user):
            raise ForbiddenError("Access denied: you can only manage your own courses")

    @staticmethod
    def _categories_by_id(db: Session, category_ids: List[int]) -> List[CourseCategory]:
        wanted = set(category_ids)
        if not wanted:
            return []
        categories = db.query(CourseCategory).filter(CourseCategory.id.in_(wanted)).all()
        missing = wanted - {c.id for c in categories}
        if missing:
            raise CategoryNotFound(f"Category not found: {sorted(missing)}")
        return categories

    @staticmethod
    def list_courses(db: Session) -> List[Dict[str, Any]]:
        courses = db.query(Course).order_by(Course.id).all()
        return [CourseService._course_summary(db, course) for course in courses]

    @staticmethod
    def get_course(db: Session, course_id: int) -> Dict[str, Any]:
        course = CourseService.get_course_or_404(db, course_id)
        return CourseService._course_summary(db, course)

    @staticmethod
    def create_course(db: Session, creator_id: int, course_data: CourseCreate) -> Course:
        course = Course(
            title=course_data.title,
            description=course_data.description,
            created_by_id=creator_id,
            categories=CourseService._categories_by_id(db, course_data.category_ids)
        )
        db.add(course)
        db.commit()
        db.refresh(course)
        logger.info(f"Course created: {course.title} ({course.id})")
        return course

    @staticmethod
    def update_course(db: Session, course_id: int, user: User, patch: CourseUpdate) -> Course:
        course = CourseService.get_course_or_404(db, course_id)
        CourseService._ensure_owner(course, user)
        changed = apply_patch(course, patch, COURSE_RULES)
        if patch.category_ids is not None:
            course.categories = CourseService._categories_by_id(db, patch.category_ids)
            changed.append("categories")
        db.commit()
        db.refresh(course)
        logger.info(f"Course {course_id} updated: {changed}")
        return course

    @staticmethod
    def delete_course(db: Session, course_id: int, user: User) -> None:
        course = CourseService.get_course_or_404(db, course_id)
        CourseService._ensure_owner(course, user)
        try:
            db.delete(course)
            db.commit()
        except Exception as e:
            logger.error(f"Error deleting course {course_id}: {str(e)}")
            db.rollback()
            raise
        logger.info(f"Course {course_id} deleted")

    # Categories
    @staticmethod
    def list_categories(db: Session) -> List[CourseCategory]:
        return db.query(CourseCategory).order_by(CourseCategory.name).all()

    @staticmethod
    def create_category(db: Session, category_data: CategoryCreate) -> CourseCategory:
        name = category_data.name.strip()
        if not name:
            raise InvalidPatch("name must not be empty")
        if db.query(CourseCategory.id).filter(CourseCategory.name == name).first():
            raise CategoryExists()

        category = CourseCategory(name=name)
        db.add(category)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            raise CategoryExists()
        db.refresh(category)
        logger.info(f"Category created: {name}")
        return category

    # Enrollment
    @staticmethod
    def is_enrolled(db: Session, user_id: int, course_id: int) -> bool:
        return db.query(Enrollment.id).filter(
            Enrollment.user_id == user_id,
            Enrollment.course_id == course_id
        ).first() is not None

    @staticmethod
    def enroll(db: Session, course_id: int, trainee_id: int, enrolled_by_id: int) -> Enrollment:
        """Enroll a trainee; trainee_id defaults to the enrolling user upstream"""
        CourseService.get_course_or_404(db, course_id)
        if not db.query(User).filter(User.id == trainee_id).first():
            raise UserNotFound("User to enroll not found")
        if CourseService.is_enrolled(db, trainee_id, course_id):
            raise AlreadyEnrolled()

        enrollment = Enrollment(
            user_id=trainee_id,
            course_id=course_id,
            enrolled_by_id=enrolled_by_id
        )
        db.add(enrollment)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            raise AlreadyEnrolled()
        db.refresh(enrollment)
        logger.info(f"User {trainee_id} enrolled in course {course_id} by {enrolled_by_id}")
        return enrollment

    @staticmethod
    def unenroll(db: Session, course_id: int, trainee_id: int) -> None:
        deleted = db.query(Enrollment).filter(
            Enrollment.course_id == course_id,
            Enrollment.user_id == trainee_id
        ).delete(synchronize_session=False)
        if not deleted:
            raise NotFoundError("Enrollment not found")
        db.commit()
        logger.info(f"User {trainee_id} unenrolled from course {course_id}")

    @staticmethod
    def completed_module_ids(db: Session, user_id: int) -> set:
        return {
            module_id for (module_id,) in db.query(ModuleProgress.module_id).filter(
                ModuleProgress.user_id == user_id,
                ModuleProgress.completed == True
            ).all()
        }

    @staticmethod
    def get_enrolled_courses(db: Session, user_id: int) -> List[Dict[str, Any]]:
        """Enrolled courses with each module marked Completed or Pending for this user"""
        enrollments = db.query(Enrollment).filter(
            Enrollment.user_id == user_id
        ).order_by(Enrollment.enrolled_at.desc(), Enrollment.id.desc()).all()
        completed = CourseService.completed_module_ids(db, user_id)

        return [
            {
                "enrollment_id": e.id,
                "enrolled_at": e.enrolled_at,
                "enrolled_by": e.enrolled_by.email if e.enrolled_by else None,
                "course": {
                    "id": e.course.id,
                    "title": e.course.title,
                    "description": e.course.description,
                    "categories": [{"id": c.id, "name": c.name} for c in e.course.categories],
                    "total_modules": len(e.course.modules),
                    "completed_modules": sum(1 for m in e.course.modules if m.id in completed),
                    "modules": [
                        {
                            "id": m.id,
                            "title": m.title,
                            "content": m.content,
                            "order": m.order,
                            "video_link": m.video_link,
                            "status": "Completed" if m.id in completed else "Pending",
                        } for m in e.course.modules
                    ],
                }
            } for e in enrollments
        ]

    # Modules
    @staticmethod
    def get_module_or_404(db: Session, module_id: int) -> CourseModule:
        module = db.query(CourseModule).filter(CourseModule.id == module_id).first()
        if not module:
            raise ModuleNotFound()
        return module

    @staticmethod
    def list_modules(db: Session, course_id: int) -> List[CourseModule]:
        CourseService.get_course_or_404(db, course_id)
        return db.query(CourseModule).filter(
            CourseModule.course_id == course_id
        ).order_by(CourseModule.order).all()

    @staticmethod
    def create_module(db: Session, course_id: int, user: User, module_data: ModuleCreate) -> CourseModule:
        course = CourseService.get_course_or_404(db, course_id)
        CourseService._ensure_owner(course, user)

        order = module_data.order
        if order is None:
            current_max = db.query(func.max(CourseModule.order)).filter(
                CourseModule.course_id == course_id
            ).scalar()
            order = (current_max or 0) + 1

        module = CourseModule(
            course_id=course_id,
            title=module_data.title,
            content=module_data.content,
            video_link=module_data.video_link,
            order=order
        )
        db.add(module)
        db.commit()
        db.refresh(module)
        logger.info(f"Module {module.id} added to course {course_id}")
        return module

    @staticmethod
    def update_module(db: Session, module_id: int, user: User, patch: ModuleUpdate) -> CourseModule:
        module = CourseService.get_module_or_404(db, module_id)
        CourseService._ensure_owner(module.course, user)
        apply_patch(module, patch, MODULE_RULES)
        db.commit()
        db.refresh(module)
        return module

    @staticmethod
    def delete_module(db: Session, module_id: int, user: User) -> None:
        module = CourseService.get_module_or_404(db, module_id)
        CourseService._ensure_owner(module.course, user)
        db.delete(module)
        db.commit()
        logger.info(f"Module {module_id} deleted")

    @staticmethod
    def reorder_modules(db: Session, course_id: int, user: User, module_ids: List[int]) -> List[CourseModule]:
        """Rewrite module order to match module_ids, which must list every module once"""
        course = CourseService.get_course_or_404(db, course_id)
        CourseService._ensure_owner(course, user)

        modules = {m.id: m for m in course.modules}
        if sorted(module_ids) != sorted(modules):
            raise InvalidPatch("module_ids must list every module of the course exactly once")

        for position, module_id in enumerate(module_ids, start=1):
            modules[module_id].order = position
        db.commit()
        return CourseService.list_modules(db, course_id)

    @staticmethod
    def set_module_completion(db: Session, module_id: int, user_id: int, completed: bool) -> ModuleProgress:
        """Upsert the caller's completion flag on a module of a course they are enrolled in"""
        module = CourseService.get_module_or_404(db, module_id)
        if not CourseService.is_enrolled(db, user_id, module.course_id):
            raise NotEnrolled()

        progress = db.query(ModuleProgress).filter(
            ModuleProgress.user_id == user_id,
            ModuleProgress.module_id == module_id
        ).first()
        if progress:
            progress.completed = completed
        else:
            progress = ModuleProgress(user_id=user_id, module_id=module_id, completed=completed)
            db.add(progress)
        try:
            db.commit()
        except IntegrityError:
            # A concurrent request inserted the row first
            db.rollback()
            progress = db.query(ModuleProgress).filter(
                ModuleProgress.user_id == user_id,
                ModuleProgress.module_id == module_id
            ).one()
            progress.completed = completed
            db.commit()
        db.refresh(progress)
        logger.info(f"User {user_id} marked module {module_id} {'completed' if completed else 'pending'}")
        return progress

course_service = CourseService()
