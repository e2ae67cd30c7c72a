import random
from datetime import timedelta

import pytest

from app.errors import (
    AssessmentNotFound, AssessmentUnavailable, AttemptsExceeded, ConcurrentAttemptConflict,
    InvalidConfiguration, NotEnrolled
)
from app.models.assessments import AssessmentSubmission, SubmissionStatus
from app.services.attempts import attempt_service
from app.utils.timeutil import utcnow
from conftest import choice_question


def test_start_attempt_creates_first_submission(db, scenario):
    started = attempt_service.start_attempt(db, scenario.assessment.id, scenario.student.id)

    assert started.resumed is False
    assert started.attempt_number == 1
    assert started.assessment.total_marks == 10
    assert [q.id for q in started.questions] == [scenario.choice.id, scenario.essay.id]

    submission = db.get(AssessmentSubmission, started.submission_id)
    assert submission.status == SubmissionStatus.IN_PROGRESS
    assert submission.total_marks == 10
    assert submission.obtained_marks == 0
    assert submission.is_checked_by_teacher is False
    assert submission.question_order is None


def test_start_payload_hides_correct_answers(db, scenario):
    started = attempt_service.start_attempt(db, scenario.assessment.id, scenario.student.id)
    payload = started.model_dump()

    for question in payload["questions"]:
        for option in question["options"]:
            assert set(option) == {"id", "option_text"}


def test_start_attempt_resumes_in_progress_submission(db, scenario):
    first = attempt_service.start_attempt(db, scenario.assessment.id, scenario.student.id)
    again = attempt_service.start_attempt(db, scenario.assessment.id, scenario.student.id)

    assert again.resumed is True
    assert again.submission_id == first.submission_id
    assert db.query(AssessmentSubmission).count() == 1


def test_start_attempt_requires_enrollment(db, scenario, make_user):
    outsider = make_user("outsider@lms.org")
    with pytest.raises(NotEnrolled):
        attempt_service.start_attempt(db, scenario.assessment.id, outsider.id)


def test_inactive_assessment_is_not_found(db, scenario):
    scenario.assessment.is_active = False
    db.commit()
    with pytest.raises(AssessmentNotFound):
        attempt_service.start_attempt(db, scenario.assessment.id, scenario.student.id)


def test_start_attempt_outside_window(db, scenario):
    scenario.assessment.start_date = utcnow() + timedelta(days=1)
    db.commit()
    with pytest.raises(AssessmentUnavailable):
        attempt_service.start_attempt(db, scenario.assessment.id, scenario.student.id)

    scenario.assessment.start_date = utcnow() - timedelta(days=2)
    scenario.assessment.end_date = utcnow() - timedelta(days=1)
    db.commit()
    with pytest.raises(AssessmentUnavailable):
        attempt_service.start_attempt(db, scenario.assessment.id, scenario.student.id)


def test_attempt_limit(db, scenario):
    started = attempt_service.start_attempt(db, scenario.assessment.id, scenario.student.id)
    attempt_service.submit(db, started.submission_id, scenario.student.id, scenario.assessment.id)

    with pytest.raises(AttemptsExceeded):
        attempt_service.start_attempt(db, scenario.assessment.id, scenario.student.id)


def test_second_attempt_allowed_when_configured(db, scenario):
    scenario.assessment.attempts = 2
    db.commit()

    first = attempt_service.start_attempt(db, scenario.assessment.id, scenario.student.id)
    attempt_service.submit(db, first.submission_id, scenario.student.id, scenario.assessment.id)
    second = attempt_service.start_attempt(db, scenario.assessment.id, scenario.student.id)

    assert second.attempt_number == 2
    assert second.submission_id != first.submission_id


def test_zero_total_marks_is_invalid_configuration(db, scenario):
    scenario.assessment.total_marks = 0
    db.commit()
    with pytest.raises(InvalidConfiguration):
        attempt_service.start_attempt(db, scenario.assessment.id, scenario.student.id)
    assert db.query(AssessmentSubmission).count() == 0


def test_unique_attempt_violation_reports_conflict(db, scenario, monkeypatch):
    # another request already inserted attempt 1, but the count was taken before it
    db.add(AssessmentSubmission(
        assessment_id=scenario.assessment.id,
        user_id=scenario.student.id,
        attempt_number=1,
        total_marks=10,
        status=SubmissionStatus.COMPLETED,
        start_time=utcnow()
    ))
    db.commit()
    scenario.assessment.attempts = 3
    db.commit()

    original_query = db.query

    class StaleCount:
        def __init__(self, query):
            self._query = query

        def filter(self, *args):
            return StaleCount(self._query.filter(*args))

        def order_by(self, *args):
            return StaleCount(self._query.order_by(*args))

        def first(self):
            return self._query.first()

        def count(self):
            return 0

    def fake_query(*entities):
        query = original_query(*entities)
        if len(entities) == 1 and entities[0] is AssessmentSubmission:
            return StaleCount(query)
        return query

    monkeypatch.setattr(db, "query", fake_query)
    with pytest.raises(ConcurrentAttemptConflict):
        attempt_service.start_attempt(db, scenario.assessment.id, scenario.student.id)


def test_randomized_order_is_frozen_for_resume(db, scenario, make_assessment):
    questions = [choice_question(text=f"Question {i}", marks=2) for i in range(1, 6)]
    assessment = make_assessment(scenario.course, scenario.trainer, questions=questions, randomize_questions=True)

    started = attempt_service.start_attempt(db, assessment.id, scenario.student.id, rng=random.Random(7))
    order = [q.id for q in started.questions]
    assert sorted(order) == sorted(q.id for q in assessment.questions)

    submission = db.get(AssessmentSubmission, started.submission_id)
    assert submission.question_order == order

    resumed = attempt_service.start_attempt(db, assessment.id, scenario.student.id, rng=random.Random(99))
    assert [q.id for q in resumed.questions] == order


def test_list_my_assessments_withholds_unapproved_scores(db, scenario):
    started = attempt_service.start_attempt(db, scenario.assessment.id, scenario.student.id)
    attempt_service.save_answer(
        db, started.submission_id, scenario.student.id, scenario.choice.id,
        selected_option_id=scenario.correct_option.id
    )
    attempt_service.submit(db, started.submission_id, scenario.student.id, scenario.assessment.id)

    [item] = attempt_service.list_my_assessments(db, scenario.student.id)
    assert item["status"] == "PENDING_REVIEW"
    assert item["attempts_remaining"] == 0
    assert item["can_start"] is False
    assert item["latest_score"]["percentage"] is None
    assert item["latest_score"]["obtained_marks"] is None
    assert item["latest_score"]["is_passed"] is None


def test_assessment_details(db, scenario):
    details = attempt_service.get_assessment_details(db, scenario.assessment.id, scenario.student.id)

    assert details["total_questions"] == 2
    assert details["attempts_used"] == 0
    assert details["attempts_remaining"] == 1
    assert details["is_available"] is True
    assert details["course"]["id"] == scenario.course.id
