from sqlalchemy.orm import Session
from app.database import Database
from app.models.user import User, Role, Capability, RoleCapability, RoleName
from app.services.auth_service import auth_service
from app.services.policy import CAPABILITIES, DEFAULT_GRANTS
from app.config import settings
import logging

logger = logging.getLogger(__name__)

def seed_roles_and_capabilities(db: Session) -> None:
    """Upsert the role catalogue, capability catalogue and default grants"""
    roles = {}
    for role_name in RoleName:
        role = db.query(Role).filter(Role.name == role_name.value).first()
        if not role:
            role = Role(name=role_name.value)
            db.add(role)
            db.flush()
        roles[role.name] = role

    capabilities = {}
    for name, category in CAPABILITIES:
        capability = db.query(Capability).filter(Capability.name == name).first()
        if not capability:
            capability = Capability(name=name, category=category)
            db.add(capability)
            db.flush()
        capabilities[name] = capability

    for role_name, granted in DEFAULT_GRANTS.items():
        role = roles[role_name]
        existing = {rc.capability_id for rc in role.role_capabilities}
        for name in granted:
            capability = capabilities[name]
            if capability.id not in existing:
                db.add(RoleCapability(role_id=role.id, capability_id=capability.id))
                existing.add(capability.id)

    db.commit()

def create_admin(database: Database) -> None:
    """Seed roles and create the admin user if it doesn't exist"""
    db = database.session()
    try:
        seed_roles_and_capabilities(db)

        admin_email = settings.admin_email
        existing_admin = db.query(User).filter(User.email == admin_email).first()
        if existing_admin:
            return

        admin_role = db.query(Role).filter(Role.name == RoleName.admin.value).first()
        admin = User(
            email=admin_email,
            password_hash=auth_service.get_password_hash(settings.admin_password),
            role_id=admin_role.id,
            full_name="Admin User",
            designation="System Administrator"
        )
        db.add(admin)
        db.commit()
        logger.info(f"Admin created: {admin_email}")
    finally:
        db.close()
