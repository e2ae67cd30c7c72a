"""Taking an assessment: starting or resuming an attempt, recording answers
and submitting the attempt for review.

A submission moves IN_PROGRESS -> COMPLETED through ``submit`` only.
Objective answers are scored the moment they are saved; free-text answers
stay at zero and ungraded until a reviewer grades them.
"""
import math
import random
from typing import List, Dict, Any, Optional
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from app.models.assessments import (
    Assessment, Question, AssessmentSubmission, SubmissionAnswer, SubmissionStatus
)
from app.models.courses import Course, Enrollment
from app.schemas.assessments import (
    AttemptStarted, AttemptAssessmentInfo, QuestionView, OptionView, SubmissionReceipt
)
from app.services.course_service import course_service
from app.services.scoring import score_submission
from app.utils.timeutil import utcnow, as_utc
from app.errors import (
    AlreadyCompleted, AssessmentNotFound, AssessmentUnavailable, AttemptsExceeded,
    ConcurrentAttemptConflict, InvalidConfiguration, NotEnrolled, NotSubmissionOwner,
    OptionNotFound, QuestionNotFound, SubmissionClosed, SubmissionNotFound
)
import logging

logger = logging.getLogger(__name__)

STATUS_PRIORITY = {
    "IN_PROGRESS": 0, "NOT_STARTED": 1, "PENDING_REVIEW": 2,
    "TIME_UP": 3, "ABANDONED": 3, "FAILED": 4, "PASSED": 5,
}

def student_status(submission: Optional[AssessmentSubmission]) -> str:
    """Status of a student's latest attempt as shown to that student"""
    if submission is None:
        return "NOT_STARTED"
    if submission.status == SubmissionStatus.IN_PROGRESS:
        return "IN_PROGRESS"
    if submission.status != SubmissionStatus.COMPLETED:
        # ABANDONED and TIME_UP attempts never reach review
        return submission.status.value
    if not submission.is_checked_by_teacher:
        return "PENDING_REVIEW"
    return "PASSED" if submission.is_passed else "FAILED"

def is_within_window(assessment: Assessment, now) -> bool:
    start, end = as_utc(assessment.start_date), as_utc(assessment.end_date)
    return (not start or now >= start) and (not end or now <= end)

def ordered_questions(assessment: Assessment, submission: AssessmentSubmission) -> List[Question]:
    """Active questions in the order frozen on the submission.

    Without a frozen order the questions follow their ``order`` field.
    Questions activated after the attempt started go at the end.
    """
    active = [q for q in assessment.questions if q.is_active]
    if not submission.question_order:
        return active

    remaining = {q.id: q for q in active}
    ordered = [remaining.pop(qid) for qid in submission.question_order if qid in remaining]
    ordered.extend(q for q in active if q.id in remaining)
    return ordered

def _question_view(question: Question) -> QuestionView:
    return QuestionView(
        id=question.id,
        question_text=question.question_text,
        question_type=question.question_type,
        marks=question.marks,
        image_url=question.image_url,
        options=[OptionView.model_validate(opt) for opt in question.options]
    )

class AttemptService:

    @staticmethod
    def _attempt_payload(assessment: Assessment, submission: AssessmentSubmission, resumed: bool) -> AttemptStarted:
        return AttemptStarted(
            submission_id=submission.id,
            attempt_number=submission.attempt_number,
            resumed=resumed,
            assessment=AttemptAssessmentInfo(
                id=assessment.id,
                title=assessment.title,
                description=assessment.description,
                time_limit=assessment.time_limit,
                total_marks=assessment.total_marks,
                start_time=submission.start_time
            ),
            questions=[_question_view(q) for q in ordered_questions(assessment, submission)]
        )

    @staticmethod
    def _active_assessment(db: Session, assessment_id: int) -> Assessment:
        assessment = db.query(Assessment).filter(
            Assessment.id == assessment_id,
            Assessment.is_active == True
        ).first()
        if not assessment:
            raise AssessmentNotFound("Assessment not found or inactive")
        return assessment

    @staticmethod
    def start_attempt(
        db: Session,
        assessment_id: int,
        user_id: int,
        rng: Optional[random.Random] = None
    ) -> AttemptStarted:
        """Start a new attempt or resume the one already in progress"""
        assessment = AttemptService._active_assessment(db, assessment_id)

        if not course_service.is_enrolled(db, user_id, assessment.course_id):
            raise NotEnrolled()

        now = utcnow()
        if assessment.start_date and now < as_utc(assessment.start_date):
            raise AssessmentUnavailable("Assessment has not started yet")
        if assessment.end_date and now > as_utc(assessment.end_date):
            raise AssessmentUnavailable("Assessment has ended")

        in_progress = db.query(AssessmentSubmission).filter(
            AssessmentSubmission.assessment_id == assessment_id,
            AssessmentSubmission.user_id == user_id,
            AssessmentSubmission.status == SubmissionStatus.IN_PROGRESS
        ).order_by(AssessmentSubmission.attempt_number.desc()).first()

        if in_progress:
            logger.info(f"Resuming submission {in_progress.id} for user {user_id}")
            return AttemptService._attempt_payload(assessment, in_progress, resumed=True)

        prior_attempts = db.query(AssessmentSubmission).filter(
            AssessmentSubmission.assessment_id == assessment_id,
            AssessmentSubmission.user_id == user_id
        ).count()

        if prior_attempts >= assessment.attempts:
            raise AttemptsExceeded(
                f"Maximum attempts exceeded ({prior_attempts}/{assessment.attempts})"
            )

        if not assessment.total_marks or assessment.total_marks <= 0:
            raise InvalidConfiguration()

        question_order = None
        if assessment.randomize_questions:
            question_order = [q.id for q in assessment.questions if q.is_active]
            (rng or random).shuffle(question_order)

        submission = AssessmentSubmission(
            assessment_id=assessment_id,
            user_id=user_id,
            attempt_number=prior_attempts + 1,
            total_marks=assessment.total_marks,
            status=SubmissionStatus.IN_PROGRESS,
            start_time=now,
            question_order=question_order
        )
        db.add(submission)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            logger.warning(
                f"Concurrent start for assessment {assessment_id}, user {user_id}, "
                f"attempt {prior_attempts + 1}"
            )
            raise ConcurrentAttemptConflict()
        db.refresh(submission)

        logger.info(
            f"Attempt {submission.attempt_number} started: submission {submission.id}, "
            f"assessment {assessment_id}, user {user_id}"
        )
        return AttemptService._attempt_payload(assessment, submission, resumed=False)

    @staticmethod
    def save_answer(
        db: Session,
        submission_id: int,
        user_id: int,
        question_id: int,
        selected_option_id: Optional[int] = None,
        text_answer: Optional[str] = None,
        time_spent: Optional[int] = None
    ) -> SubmissionAnswer:
        """Upsert the single answer for (submission, question), scoring objective types"""
        submission = db.query(AssessmentSubmission).filter(
            AssessmentSubmission.id == submission_id
        ).first()
        if not submission:
            raise SubmissionNotFound()
        if submission.user_id != user_id:
            raise NotSubmissionOwner()
        if submission.status != SubmissionStatus.IN_PROGRESS:
            raise SubmissionClosed("Invalid submission or assessment already completed")

        question = db.query(Question).filter(
            Question.id == question_id,
            Question.assessment_id == submission.assessment_id
        ).first()
        if not question:
            raise QuestionNotFound()

        selected = None
        if selected_option_id is not None:
            selected = next((opt for opt in question.options if opt.id == selected_option_id), None)
            if selected is None:
                raise OptionNotFound()

        if question.question_type.is_objective:
            is_correct = bool(selected and selected.is_correct)
            fields = {
                "is_correct": is_correct,
                "marks_obtained": question.marks if is_correct else 0,
                "is_graded": True,
            }
        else:
            # marked later by a reviewer
            fields = {"is_correct": False, "marks_obtained": 0, "is_graded": False}

        fields.update(
            selected_option_id=selected_option_id,
            text_answer=text_answer,
            time_spent=time_spent
        )

        answer = AttemptService._upsert_answer(db, submission_id, question_id, fields)
        logger.info(f"Answer saved: submission {submission_id}, question {question_id}")
        return answer

    @staticmethod
    def _upsert_answer(db: Session, submission_id: int, question_id: int, fields: Dict[str, Any]) -> SubmissionAnswer:
        def find():
            return db.query(SubmissionAnswer).filter(
                SubmissionAnswer.submission_id == submission_id,
                SubmissionAnswer.question_id == question_id
            ).first()

        answer = find()
        if answer is None:
            answer = SubmissionAnswer(submission_id=submission_id, question_id=question_id)
            db.add(answer)
        for key, value in fields.items():
            setattr(answer, key, value)

        try:
            db.commit()
        except IntegrityError:
            # a concurrent save inserted the row first; overwrite it instead
            db.rollback()
            answer = find()
            if answer is None:
                raise
            for key, value in fields.items():
                setattr(answer, key, value)
            db.commit()

        db.refresh(answer)
        return answer

    @staticmethod
    def submit(db: Session, submission_id: int, user_id: int, assessment_id: int) -> SubmissionReceipt:
        """Close an in-progress submission and compute its unapproved score"""
        try:
            submission = db.query(AssessmentSubmission).filter(
                AssessmentSubmission.id == submission_id,
                AssessmentSubmission.user_id == user_id,
                AssessmentSubmission.assessment_id == assessment_id
            ).with_for_update().populate_existing().first()

            if not submission:
                raise SubmissionNotFound("Submission not found or already completed")
            if submission.status != SubmissionStatus.IN_PROGRESS:
                raise AlreadyCompleted()

            assessment = submission.assessment
            if not assessment.total_marks or assessment.total_marks <= 0:
                raise InvalidConfiguration("Assessment has invalid total marks")

            score = score_submission(db, submission.id, assessment)
            now = utcnow()
            time_spent = max(0, math.floor((now - as_utc(submission.start_time)).total_seconds()))

            submission.status = SubmissionStatus.COMPLETED
            submission.end_time = now
            submission.obtained_marks = score.obtained_marks
            submission.percentage = score.percentage
            submission.is_passed = score.is_passed
            submission.time_spent = time_spent
            submission.is_checked_by_teacher = False
            db.commit()
        except Exception:
            db.rollback()
            raise

        logger.info(
            f"Submission {submission_id} completed: {score.obtained_marks}/{score.total_marks} "
            f"({score.percentage}%), pending review"
        )
        return SubmissionReceipt(
            submission_id=submission_id,
            submitted_at=now,
            time_spent=time_spent,
            obtained_marks=score.obtained_marks,
            total_marks=score.total_marks,
            percentage=score.percentage
        )

    # Read side for students
    @staticmethod
    def list_my_assessments(db: Session, user_id: int) -> List[Dict[str, Any]]:
        """Active assessments from every course the user is enrolled in"""
        enrollments = db.query(Enrollment).filter(Enrollment.user_id == user_id).all()
        now = utcnow()

        result = []
        for enrollment in enrollments:
            course = enrollment.course
            for assessment in course.assessments:
                if not assessment.is_active:
                    continue
                submissions = sorted(
                    (s for s in assessment.submissions if s.user_id == user_id),
                    key=lambda s: s.attempt_number,
                    reverse=True
                )
                latest = submissions[0] if submissions else None
                attempts_used = len(submissions)
                attempts_remaining = max(0, assessment.attempts - attempts_used)
                status = student_status(latest)
                available = is_within_window(assessment, now)

                latest_score = None
                if latest and latest.status == SubmissionStatus.COMPLETED:
                    approved = latest.is_checked_by_teacher
                    latest_score = {
                        "percentage": latest.percentage if approved else None,
                        "obtained_marks": latest.obtained_marks if approved else None,
                        "is_passed": latest.is_passed if approved else None,
                        "submitted_at": latest.end_time,
                        "is_checked_by_teacher": approved,
                    }

                result.append({
                    "assessment_id": assessment.id,
                    "title": assessment.title,
                    "description": assessment.description,
                    "course_id": course.id,
                    "course_name": course.title,
                    "time_limit": assessment.time_limit,
                    "total_marks": assessment.total_marks,
                    "passing_marks": assessment.passing_marks,
                    "total_questions": sum(1 for q in assessment.questions if q.is_active),
                    "attempts": assessment.attempts,
                    "attempts_used": attempts_used,
                    "attempts_remaining": attempts_remaining,
                    "status": status,
                    "is_available": available,
                    "start_date": assessment.start_date,
                    "end_date": assessment.end_date,
                    "latest_score": latest_score,
                    "can_start": available and attempts_remaining > 0 and status != "IN_PROGRESS",
                    "can_resume": status == "IN_PROGRESS",
                })

        result.sort(key=lambda a: STATUS_PRIORITY[a["status"]])
        return result

    @staticmethod
    def get_assessment_details(db: Session, assessment_id: int, user_id: int) -> Dict[str, Any]:
        """Assessment summary shown before the student starts"""
        assessment = AttemptService._active_assessment(db, assessment_id)
        if not course_service.is_enrolled(db, user_id, assessment.course_id):
            raise NotEnrolled()

        attempts_used = db.query(AssessmentSubmission).filter(
            AssessmentSubmission.assessment_id == assessment_id,
            AssessmentSubmission.user_id == user_id
        ).count()
        course = db.query(Course).filter(Course.id == assessment.course_id).first()

        return {
            "id": assessment.id,
            "title": assessment.title,
            "description": assessment.description,
            "course": {"id": course.id, "title": course.title},
            "time_limit": assessment.time_limit,
            "total_marks": assessment.total_marks,
            "passing_marks": assessment.passing_marks,
            "total_questions": sum(1 for q in assessment.questions if q.is_active),
            "attempts": assessment.attempts,
            "attempts_used": attempts_used,
            "attempts_remaining": max(0, assessment.attempts - attempts_used),
            "is_available": is_within_window(assessment, utcnow()),
            "start_date": assessment.start_date,
            "end_date": assessment.end_date,
        }

attempt_service = AttemptService()
