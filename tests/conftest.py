import os
from types import SimpleNamespace

# Settings are read at import time
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("ADMIN_EMAIL", "admin@lms.org")
os.environ.setdefault("ADMIN_PASSWORD", "admin-password")
os.environ.setdefault("BCRYPT_ROUNDS", "4")

import pytest  # noqa: E402

from app.database import Database  # noqa: E402
from app.init_admin import seed_roles_and_capabilities  # noqa: E402
from app.models.courses import Course, Enrollment  # noqa: E402
from app.models.user import User, Role, RoleName  # noqa: E402
from app.models.assessments import QuestionType  # noqa: E402
from app.schemas.assessments import AssessmentCreate  # noqa: E402
from app.services.assessments import assessment_service  # noqa: E402
from app.services.auth_service import auth_service  # noqa: E402


@pytest.fixture
def database():
    database = Database("sqlite://")
    database.open()
    database.create_all()
    yield database
    database.close()


@pytest.fixture
def db(database):
    session = database.session()
    seed_roles_and_capabilities(session)
    yield session
    session.close()


@pytest.fixture
def make_user(db):
    def _make_user(email, role=RoleName.trainee, password="secret123", full_name=None):
        role_row = db.query(Role).filter(Role.name == role.value).first()
        user = User(
            email=email,
            password_hash=auth_service.get_password_hash(password),
            full_name=full_name,
            role_id=role_row.id
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user
    return _make_user


@pytest.fixture
def make_course(db):
    def _make_course(owner, title="Python Basics"):
        course = Course(title=title, description="Intro course", created_by_id=owner.id)
        db.add(course)
        db.commit()
        db.refresh(course)
        return course
    return _make_course


@pytest.fixture
def enroll(db):
    def _enroll(user, course):
        db.add(Enrollment(user_id=user.id, course_id=course.id, enrolled_by_id=user.id))
        db.commit()
    return _enroll


def choice_question(text="2 + 2 = ?", marks=5, correct="4", wrong="5"):
    return {
        "question_text": text,
        "question_type": QuestionType.SINGLE_CHOICE,
        "marks": marks,
        "options": [
            {"option_text": correct, "is_correct": True},
            {"option_text": wrong, "is_correct": False},
        ],
    }


def long_answer_question(text="Explain recursion", marks=5):
    return {"question_text": text, "question_type": QuestionType.LONG_ANSWER, "marks": marks}


@pytest.fixture
def make_assessment(db):
    def _make_assessment(course, creator, questions=None, **fields):
        data = {
            "title": "Unit test",
            "course_id": course.id,
            "total_marks": 10,
            "passing_marks": 5,
            "questions": questions if questions is not None else [choice_question(), long_answer_question()],
        }
        data.update(fields)
        return assessment_service.create_assessment(db, creator.id, AssessmentCreate(**data))
    return _make_assessment


@pytest.fixture
def scenario(make_user, make_course, enroll, make_assessment):
    """Trainer-owned course with an enrolled student and a two-question assessment.

    10 marks in total, 5 to pass: one 5-mark single choice and one 5-mark
    long answer.
    """
    trainer = make_user("trainer@lms.org", RoleName.trainer, full_name="Tina Trainer")
    student = make_user("student@lms.org", full_name="Sam Student")
    course = make_course(trainer)
    enroll(student, course)
    assessment = make_assessment(course, trainer)
    choice, essay = assessment.questions
    return SimpleNamespace(
        trainer=trainer,
        student=student,
        course=course,
        assessment=assessment,
        choice=choice,
        essay=essay,
        correct_option=choice.correct_option,
        wrong_option=next(o for o in choice.options if not o.is_correct),
    )
