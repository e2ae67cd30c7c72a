from datetime import timedelta

import pytest

from app.errors import AlreadyCompleted, InvalidConfiguration, SubmissionNotFound
from app.models.assessments import AssessmentSubmission, SubmissionStatus
from app.services.attempts import attempt_service
from app.utils.timeutil import utcnow


def _answer_both(db, scenario, submission_id):
    attempt_service.save_answer(
        db, submission_id, scenario.student.id, scenario.choice.id,
        selected_option_id=scenario.correct_option.id
    )
    attempt_service.save_answer(
        db, submission_id, scenario.student.id, scenario.essay.id,
        text_answer="A function that calls itself on a smaller input"
    )


def test_submit_returns_pending_receipt(db, scenario):
    started = attempt_service.start_attempt(db, scenario.assessment.id, scenario.student.id)
    _answer_both(db, scenario, started.submission_id)

    receipt = attempt_service.submit(db, started.submission_id, scenario.student.id, scenario.assessment.id)

    assert receipt.status == "PENDING_REVIEW"
    assert receipt.obtained_marks == 5
    assert receipt.total_marks == 10
    assert receipt.percentage == 50.0
    assert receipt.time_spent >= 0

    submission = db.get(AssessmentSubmission, started.submission_id)
    assert submission.status == SubmissionStatus.COMPLETED
    assert submission.is_passed is True
    assert submission.is_checked_by_teacher is False
    assert submission.end_time is not None


def test_time_spent_counts_whole_seconds(db, scenario):
    started = attempt_service.start_attempt(db, scenario.assessment.id, scenario.student.id)
    submission = db.get(AssessmentSubmission, started.submission_id)
    submission.start_time = utcnow() - timedelta(seconds=90, milliseconds=700)
    db.commit()

    receipt = attempt_service.submit(db, started.submission_id, scenario.student.id, scenario.assessment.id)
    assert 90 <= receipt.time_spent <= 92


def test_submit_without_answers_scores_zero(db, scenario):
    started = attempt_service.start_attempt(db, scenario.assessment.id, scenario.student.id)
    receipt = attempt_service.submit(db, started.submission_id, scenario.student.id, scenario.assessment.id)

    assert receipt.obtained_marks == 0
    assert receipt.percentage == 0.0
    assert db.get(AssessmentSubmission, started.submission_id).is_passed is False


def test_submit_twice(db, scenario):
    started = attempt_service.start_attempt(db, scenario.assessment.id, scenario.student.id)
    attempt_service.submit(db, started.submission_id, scenario.student.id, scenario.assessment.id)

    with pytest.raises(AlreadyCompleted):
        attempt_service.submit(db, started.submission_id, scenario.student.id, scenario.assessment.id)


def test_submit_checks_owner_and_assessment(db, scenario, make_user):
    started = attempt_service.start_attempt(db, scenario.assessment.id, scenario.student.id)
    other = make_user("other@lms.org")

    with pytest.raises(SubmissionNotFound):
        attempt_service.submit(db, started.submission_id, other.id, scenario.assessment.id)
    with pytest.raises(SubmissionNotFound):
        attempt_service.submit(db, started.submission_id, scenario.student.id, scenario.assessment.id + 100)


def test_submit_with_broken_total_marks(db, scenario):
    started = attempt_service.start_attempt(db, scenario.assessment.id, scenario.student.id)
    scenario.assessment.total_marks = 0
    db.commit()

    with pytest.raises(InvalidConfiguration):
        attempt_service.submit(db, started.submission_id, scenario.student.id, scenario.assessment.id)
    assert db.get(AssessmentSubmission, started.submission_id).status == SubmissionStatus.IN_PROGRESS
