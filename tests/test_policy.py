import pytest

from app.errors import ForbiddenError, RoleNotFound
from app.init_admin import seed_roles_and_capabilities
from app.models.user import Capability, Role, RoleCapability, RoleName
from app.services.policy import CAPABILITIES, capability_policy


def test_seeding_is_idempotent(db):
    before = db.query(RoleCapability).count()
    seed_roles_and_capabilities(db)

    assert db.query(RoleCapability).count() == before
    assert db.query(Capability).count() == len(CAPABILITIES)


def test_default_grants(db, make_user):
    admin = make_user("root@lms.org", RoleName.admin)
    trainer = make_user("coach@lms.org", RoleName.trainer)
    trainee = make_user("pupil@lms.org")

    assert capability_policy.capabilities_for(db, admin) == {name for name, _ in CAPABILITIES}
    assert capability_policy.is_allowed(db, trainer, "give_grade_to_questions")
    assert capability_policy.is_allowed(db, trainee, "start_taking_assessment")
    assert not capability_policy.is_allowed(db, trainee, "approve_submission_review")


def test_inactive_user_has_no_capabilities(db, make_user):
    admin = make_user("retired@lms.org", RoleName.admin)
    admin.is_active = False
    db.commit()

    with pytest.raises(ForbiddenError):
        capability_policy.ensure(db, admin, "view_roles")


def test_grant_and_revoke(db, make_user):
    trainee = make_user("promoted@lms.org")
    role = db.query(Role).filter(Role.name == RoleName.trainee.value).first()
    cap = db.query(Capability).filter(Capability.name == "pending_grading").first()

    result = capability_policy.set_role_capabilities(db, role.id, [cap.id, cap.id, 9999], True)
    assert result["changed"] == 1
    assert result["ignored"] == [9999]
    assert capability_policy.is_allowed(db, trainee, "pending_grading")

    result = capability_policy.set_role_capabilities(db, role.id, [cap.id], False)
    assert result["changed"] == 1
    assert not capability_policy.is_allowed(db, trainee, "pending_grading")


def test_unknown_role(db):
    with pytest.raises(RoleNotFound):
        capability_policy.set_role_capabilities(db, 999, [1], True)


def test_change_user_role(db, make_user):
    user = make_user("switch@lms.org")
    trainer_role = db.query(Role).filter(Role.name == RoleName.trainer.value).first()

    capability_policy.change_user_role(db, user.id, trainer_role.id)

    assert user.role_name == "trainer"
    assert capability_policy.is_allowed(db, user, "create_assessments")
