import pytest

from app.errors import (
    NotSubmissionOwner, OptionNotFound, QuestionNotFound, SubmissionClosed, SubmissionNotFound
)
from app.models.assessments import SubmissionAnswer
from app.services.attempts import attempt_service


@pytest.fixture
def attempt(db, scenario):
    return attempt_service.start_attempt(db, scenario.assessment.id, scenario.student.id)


def test_correct_choice_scores_full_marks(db, scenario, attempt):
    answer = attempt_service.save_answer(
        db, attempt.submission_id, scenario.student.id, scenario.choice.id,
        selected_option_id=scenario.correct_option.id
    )

    assert answer.is_correct is True
    assert answer.marks_obtained == 5
    assert answer.is_graded is True


def test_wrong_choice_scores_zero(db, scenario, attempt):
    answer = attempt_service.save_answer(
        db, attempt.submission_id, scenario.student.id, scenario.choice.id,
        selected_option_id=scenario.wrong_option.id
    )

    assert answer.is_correct is False
    assert answer.marks_obtained == 0
    assert answer.is_graded is True


def test_free_text_waits_for_grading(db, scenario, attempt):
    answer = attempt_service.save_answer(
        db, attempt.submission_id, scenario.student.id, scenario.essay.id,
        text_answer="A function calling itself"
    )

    assert answer.marks_obtained == 0
    assert answer.is_graded is False
    assert answer.needs_grading is True


def test_saving_twice_overwrites_single_answer(db, scenario, attempt):
    attempt_service.save_answer(
        db, attempt.submission_id, scenario.student.id, scenario.choice.id,
        selected_option_id=scenario.wrong_option.id
    )
    answer = attempt_service.save_answer(
        db, attempt.submission_id, scenario.student.id, scenario.choice.id,
        selected_option_id=scenario.correct_option.id, time_spent=12
    )

    rows = db.query(SubmissionAnswer).filter(SubmissionAnswer.submission_id == attempt.submission_id).all()
    assert len(rows) == 1
    assert answer.marks_obtained == 5
    assert answer.time_spent == 12


def test_missing_submission(db, scenario):
    with pytest.raises(SubmissionNotFound):
        attempt_service.save_answer(db, 999, scenario.student.id, scenario.choice.id)


def test_other_users_submission(db, scenario, attempt, make_user):
    intruder = make_user("intruder@lms.org")
    with pytest.raises(NotSubmissionOwner):
        attempt_service.save_answer(db, attempt.submission_id, intruder.id, scenario.choice.id)


def test_closed_submission_rejects_answers(db, scenario, attempt):
    attempt_service.submit(db, attempt.submission_id, scenario.student.id, scenario.assessment.id)
    with pytest.raises(SubmissionClosed):
        attempt_service.save_answer(
            db, attempt.submission_id, scenario.student.id, scenario.choice.id,
            selected_option_id=scenario.correct_option.id
        )


def test_question_from_another_assessment(db, scenario, attempt, make_assessment):
    other = make_assessment(scenario.course, scenario.trainer, title="Other")
    with pytest.raises(QuestionNotFound):
        attempt_service.save_answer(db, attempt.submission_id, scenario.student.id, other.questions[0].id)


def test_option_from_another_question(db, scenario, attempt, make_assessment):
    other = make_assessment(scenario.course, scenario.trainer, title="Other")
    foreign_option = other.questions[0].options[0]
    with pytest.raises(OptionNotFound):
        attempt_service.save_answer(
            db, attempt.submission_id, scenario.student.id, scenario.choice.id,
            selected_option_id=foreign_option.id
        )
