import pytest
from pydantic import ValidationError

from app.errors import AssessmentNotFound, CourseNotFound, InvalidPatch
from app.models.assessments import QuestionType
from app.schemas.assessments import AssessmentCreate, AssessmentUpdate, QuestionCreate, QuestionUpdate
from app.services.assessments import assessment_service
from conftest import choice_question, long_answer_question


def test_create_assessment_defaults(db, scenario):
    assessment = assessment_service.create_assessment(
        db, scenario.trainer.id, AssessmentCreate(title="Defaults", course_id=scenario.course.id)
    )

    assert assessment.total_marks == 100
    assert assessment.passing_marks == 40
    assert assessment.attempts == 1
    assert assessment.is_active is True


def test_create_assessment_for_missing_course(db, scenario):
    with pytest.raises(CourseNotFound):
        assessment_service.create_assessment(
            db, scenario.trainer.id, AssessmentCreate(title="Lost", course_id=404)
        )


def test_choice_question_needs_exactly_one_correct_option():
    with pytest.raises(ValidationError):
        QuestionCreate(
            question_text="Pick",
            question_type=QuestionType.SINGLE_CHOICE,
            options=[
                {"option_text": "a", "is_correct": True},
                {"option_text": "b", "is_correct": True},
            ]
        )
    with pytest.raises(ValidationError):
        QuestionCreate(question_text="Pick", question_type=QuestionType.TRUE_FALSE, options=[])
    with pytest.raises(ValidationError):
        QuestionCreate(
            question_text="Essay",
            question_type=QuestionType.LONG_ANSWER,
            options=[{"option_text": "a", "is_correct": True}]
        )


def test_window_must_not_be_reversed():
    with pytest.raises(ValidationError):
        AssessmentCreate(
            title="Backwards",
            course_id=1,
            start_date="2026-05-02T00:00:00Z",
            end_date="2026-05-01T00:00:00Z"
        )


def test_get_assessment_lists_questions_in_order(db, scenario):
    data = assessment_service.get_assessment(db, scenario.assessment.id)

    assert [q["id"] for q in data["questions"]] == [scenario.choice.id, scenario.essay.id]
    assert data["questions"][0]["options"][0]["is_correct"] is True
    assert data["submission_count"] == 0


def test_patch_applies_only_sent_fields(db, scenario):
    scenario.assessment.description = "Keep me"
    scenario.assessment.time_limit = 30
    db.commit()

    updated = assessment_service.update_assessment(
        db, scenario.assessment.id, AssessmentUpdate(title="Renamed", time_limit=None)
    )

    assert updated.title == "Renamed"
    assert updated.time_limit is None
    assert updated.description == "Keep me"
    assert updated.total_marks == 10


@pytest.mark.parametrize("patch", [
    {"total_marks": 0},
    {"total_marks": None},
    {"title": "   "},
    {"attempts": 0},
])
def test_patch_rejects_invalid_values(db, scenario, patch):
    with pytest.raises(InvalidPatch):
        assessment_service.update_assessment(db, scenario.assessment.id, AssessmentUpdate(**patch))

    db.refresh(scenario.assessment)
    assert scenario.assessment.total_marks == 10
    assert scenario.assessment.title == "Unit test"


def test_toggle_and_duplicate(db, scenario):
    toggled = assessment_service.toggle_status(db, scenario.assessment.id)
    assert toggled.is_active is False

    copy = assessment_service.duplicate_assessment(db, scenario.assessment.id, scenario.trainer.id)
    assert copy.title == "Unit test (Copy)"
    assert copy.is_active is False
    assert len(copy.questions) == 2
    assert [o.option_text for o in copy.questions[0].options] == ["4", "5"]


def test_add_update_delete_question(db, scenario):
    added = assessment_service.add_question(
        db, scenario.assessment.id, QuestionCreate(**long_answer_question(text="Why tests?", marks=2))
    )
    assert added.order == 3

    updated = assessment_service.update_question(
        db, scenario.choice.id,
        QuestionUpdate(options=[
            {"option_text": "four", "is_correct": True},
            {"option_text": "five", "is_correct": False},
            {"option_text": "six", "is_correct": False},
        ])
    )
    assert [o.option_text for o in updated.options] == ["four", "five", "six"]

    with pytest.raises(InvalidPatch):
        assessment_service.update_question(
            db, scenario.choice.id,
            QuestionUpdate(options=[{"option_text": "only", "is_correct": False}])
        )

    assessment_service.delete_question(db, added.id)
    assert len(assessment_service.get_assessment(db, scenario.assessment.id)["questions"]) == 2


def test_list_assessments_filters(db, scenario, make_assessment):
    make_assessment(scenario.course, scenario.trainer, title="Algebra quiz", questions=[choice_question()])
    assessment_service.toggle_status(db, scenario.assessment.id)

    active = assessment_service.list_assessments(db, status="active")
    assert [a["title"] for a in active] == ["Algebra quiz"]

    found = assessment_service.list_assessments(db, search="algebra")
    assert len(found) == 1
    assert found[0]["statistics"]["total_questions"] == 1


def test_delete_assessment(db, scenario):
    assessment_service.delete_assessment(db, scenario.assessment.id)
    with pytest.raises(AssessmentNotFound):
        assessment_service.get_assessment(db, scenario.assessment.id)
