"""Capability-based access policy.

Roles carry named capabilities. Routers ask the policy once per request
whether the caller holds the capability an operation needs; the services
behind them receive an already-authorized user and do not repeat the check.
"""
from typing import Dict, List, Set, Tuple
from sqlalchemy.orm import Session
from app.models.user import User, Role, Capability, RoleCapability, RoleName
from app.errors import ForbiddenError, RoleNotFound, UserNotFound
import logging

logger = logging.getLogger(__name__)

# (name, category)
CAPABILITIES: List[Tuple[str, str]] = [
    ("view_own_profile", "profile"),
    ("update_own_profile", "profile"),

    ("search_users", "user administration"),
    ("create_user", "user administration"),
    ("view_all_users", "user administration"),
    ("view_user_by_id", "user administration"),
    ("update_user", "user administration"),
    ("delete_user", "user administration"),
    ("change_user_role", "user administration"),

    ("view_roles", "role management"),
    ("view_capabilities", "role management"),
    ("create_roles", "role management"),
    ("create_capabilities", "role management"),
    ("assign_capabilities_to_role", "role management"),

    ("view_courses", "course catalog"),
    ("view_single_course", "course catalog"),
    ("create_courses", "course management"),
    ("update_course", "course management"),
    ("delete_course", "course management"),

    ("enroll_courses", "enrollment"),
    ("view_enrolled_courses_by_user_id", "enrollment"),
    ("unenroll_courses", "enrollment"),

    ("view_course_categories", "course organization"),
    ("create_course_categories", "course organization"),

    ("view_modules", "module management"),
    ("create_modules", "module management"),
    ("get_single_module", "module management"),
    ("update_module", "module management"),
    ("delete_module", "module management"),
    ("reorder_module", "module management"),
    ("update_module_completion_status", "module management"),

    ("create_assessments", "assessment admin"),
    ("view_assessments", "assessment admin"),
    ("view_assessment_by_id", "assessment admin"),
    ("update_assessments", "assessment admin"),
    ("delete_assessments", "assessment admin"),
    ("toggle_assessment_status", "assessment admin"),
    ("duplicate_assessment", "assessment admin"),
    ("add_question_to_assessment", "assessment admin"),
    ("update_question", "assessment admin"),
    ("delete_question", "assessment admin"),

    ("view_assessment_analytics", "assessment analytics"),
    ("view_assessments_submissions", "assessment analytics"),
    ("view_assessment_analytics_courselevel", "assessment analytics"),

    ("pending_grading", "assessment grading"),
    ("view_submission_details", "assessment grading"),
    ("give_grade_to_questions", "assessment grading"),
    ("approve_submission_review", "assessment grading"),

    ("view_all_enrolled_assessment", "assessment participation"),
    ("view_enrolled_assessment_by_id", "assessment participation"),
    ("start_taking_assessment", "assessment participation"),
    ("save_answer", "assessment participation"),
    ("submit_assessment", "assessment participation"),
    ("get_user_result", "assessment participation"),
    ("review_submission", "assessment participation"),
    ("view_assessment_progress", "assessment participation"),
]

TRAINER_CAPABILITIES = [
    "view_own_profile",
    "update_own_profile",
    "view_course_categories",
    "view_courses",
    "view_single_course",
    "create_courses",
    "update_course",
    "enroll_courses",
    "view_modules",
    "get_single_module",
    "create_modules",
    "update_module",
    "reorder_module",
    "view_assessments",
    "view_assessment_by_id",
    "create_assessments",
    "update_assessments",
    "add_question_to_assessment",
    "update_question",
    "view_assessment_analytics",
    "view_assessments_submissions",
    "pending_grading",
    "view_submission_details",
    "give_grade_to_questions",
    "approve_submission_review",
]

TRAINEE_CAPABILITIES = [
    "view_own_profile",
    "update_own_profile",
    "view_course_categories",
    "view_courses",
    "view_single_course",
    "enroll_courses",
    "get_single_module",
    "view_modules",
    "update_module_completion_status",
    "view_all_enrolled_assessment",
    "view_enrolled_assessment_by_id",
    "start_taking_assessment",
    "save_answer",
    "submit_assessment",
    "get_user_result",
    "review_submission",
    "view_assessment_progress",
]

DEFAULT_GRANTS: Dict[str, List[str]] = {
    RoleName.admin.value: [name for name, _ in CAPABILITIES],
    RoleName.trainer.value: TRAINER_CAPABILITIES,
    RoleName.trainee.value: TRAINEE_CAPABILITIES,
}


class CapabilityPolicy:

    @staticmethod
    def capabilities_for(db: Session, user: User) -> Set[str]:
        if user.role_id is None:
            return set()
        rows = db.query(Capability.name).join(
            RoleCapability, RoleCapability.capability_id == Capability.id
        ).filter(RoleCapability.role_id == user.role_id).all()
        return {name for (name,) in rows}

    @staticmethod
    def is_allowed(db: Session, user: User, capability: str) -> bool:
        if not user.is_active:
            return False
        return capability in CapabilityPolicy.capabilities_for(db, user)

    @staticmethod
    def ensure(db: Session, user: User, capability: str) -> None:
        if not CapabilityPolicy.is_allowed(db, user, capability):
            logger.warning(f"User {user.id} denied: missing {capability}")
            raise ForbiddenError(f"Access denied: missing {capability}")

    @staticmethod
    def is_admin(user: User) -> bool:
        return user.role_name == RoleName.admin.value

    # Role management
    @staticmethod
    def list_roles(db: Session) -> List[Dict]:
        roles = db.query(Role).order_by(Role.id).all()
        return [
            {
                "id": role.id,
                "name": role.name,
                "capabilities": sorted(rc.capability.name for rc in role.role_capabilities)
            } for role in roles
        ]

    @staticmethod
    def list_capabilities(db: Session) -> List[Capability]:
        return db.query(Capability).order_by(Capability.category, Capability.name).all()

    @staticmethod
    def create_role(db: Session, name: str) -> Role:
        role = Role(name=name)
        db.add(role)
        db.commit()
        db.refresh(role)
        logger.info(f"Role created: {name}")
        return role

    @staticmethod
    def create_capability(db: Session, name: str, category: str = None) -> Capability:
        capability = Capability(name=name, category=category)
        db.add(capability)
        db.commit()
        db.refresh(capability)
        logger.info(f"Capability created: {name}")
        return capability

    @staticmethod
    def set_role_capabilities(db: Session, role_id: int, capability_ids: List[int], granted: bool) -> Dict:
        """Grant or revoke the given capabilities on a role"""
        role = db.query(Role).filter(Role.id == role_id).first()
        if not role:
            raise RoleNotFound()

        existing = {
            rc.capability_id for rc in db.query(RoleCapability).filter(
                RoleCapability.role_id == role_id
            ).all()
        }
        known = {
            cap_id for (cap_id,) in db.query(Capability.id).filter(
                Capability.id.in_(capability_ids)
            ).all()
        }

        changed = 0
        try:
            if granted:
                for cap_id in capability_ids:
                    if cap_id in known and cap_id not in existing:
                        db.add(RoleCapability(role_id=role_id, capability_id=cap_id))
                        existing.add(cap_id)
                        changed += 1
            else:
                changed = db.query(RoleCapability).filter(
                    RoleCapability.role_id == role_id,
                    RoleCapability.capability_id.in_(capability_ids)
                ).delete(synchronize_session=False)
            db.commit()
        except Exception as e:
            logger.error(f"Error updating capabilities for role {role_id}: {str(e)}")
            db.rollback()
            raise

        logger.info(f"Role {role.name}: {'granted' if granted else 'revoked'} {changed} capabilities")
        return {
            "role_id": role_id,
            "granted": granted,
            "changed": changed,
            "ignored": sorted(set(capability_ids) - known)
        }

    @staticmethod
    def change_user_role(db: Session, user_id: int, role_id: int) -> User:
        user = db.query(User).filter(User.id == user_id).first()
        if not user:
            raise UserNotFound()
        role = db.query(Role).filter(Role.id == role_id).first()
        if not role:
            raise RoleNotFound()
        user.role_id = role.id
        db.commit()
        db.refresh(user)
        logger.info(f"User {user_id} moved to role {role.name}")
        return user

capability_policy = CapabilityPolicy()
