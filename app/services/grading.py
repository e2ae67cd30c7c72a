"""Manual grading of free-text answers and the review approval gate.

Every change to an answer's marks re-sums the whole submission while the
submission row is locked, so two reviewers grading different answers of
the same submission never lose each other's marks.
"""
from typing import List, Dict, Any, Optional
from sqlalchemy.orm import Session
from app.models.assessments import (
    Assessment, AssessmentSubmission, SubmissionAnswer, SubmissionStatus
)
from app.schemas.assessments import GradeResult, ReviewApproval
from app.services.attempts import ordered_questions
from app.services.scoring import score_submission
from app.utils.timeutil import utcnow
from app.errors import (
    AnswerNotFound, AssessmentNotFound, GradingIncomplete, InvalidStateError,
    MarksOutOfRange, ReviewAlreadyApproved, SubmissionNotFound
)
import logging

logger = logging.getLogger(__name__)

def _lock_submission(db: Session, submission_id: int) -> Optional[AssessmentSubmission]:
    return db.query(AssessmentSubmission).filter(
        AssessmentSubmission.id == submission_id
    ).with_for_update().populate_existing().first()

def _ungraded_count(db: Session, submission_id: int) -> int:
    answers = db.query(SubmissionAnswer).filter(
        SubmissionAnswer.submission_id == submission_id,
        SubmissionAnswer.is_graded == False,
        SubmissionAnswer.text_answer.isnot(None)
    ).all()
    return sum(1 for a in answers if a.needs_grading)

class GradingService:

    @staticmethod
    def grade_answer(db: Session, answer_id: int, reviewer_id: int, marks_obtained: int) -> GradeResult:
        """Award marks to one answer and recompute the submission score"""
        answer = db.query(SubmissionAnswer).filter(SubmissionAnswer.id == answer_id).first()
        if not answer:
            raise AnswerNotFound()

        max_marks = answer.question.marks
        if marks_obtained < 0 or marks_obtained > max_marks:
            raise MarksOutOfRange(f"Marks must be between 0 and {max_marks}")

        try:
            submission = _lock_submission(db, answer.submission_id)
            if submission.status != SubmissionStatus.COMPLETED:
                raise InvalidStateError("Only completed submissions can be graded")
            if submission.is_checked_by_teacher:
                raise ReviewAlreadyApproved("Submission has already been approved")

            answer.marks_obtained = marks_obtained
            answer.is_correct = marks_obtained == max_marks
            answer.is_graded = True
            db.flush()

            score = score_submission(db, submission.id, submission.assessment)
            submission.obtained_marks = score.obtained_marks
            submission.percentage = score.percentage
            submission.is_passed = score.is_passed
            db.commit()
        except Exception:
            db.rollback()
            raise

        logger.info(
            f"Answer {answer_id} graded {marks_obtained}/{max_marks} by {reviewer_id}; "
            f"submission {submission.id} now {score.obtained_marks} ({score.percentage}%)"
        )
        return GradeResult(
            answer_id=answer_id,
            submission_id=submission.id,
            marks_awarded=marks_obtained,
            max_marks=max_marks,
            new_total_score=score.obtained_marks,
            new_percentage=score.percentage,
            is_passed=score.is_passed
        )

    @staticmethod
    def approve_review(db: Session, submission_id: int, reviewer_id: int) -> ReviewApproval:
        """Release a completed, fully graded submission's result to the student"""
        try:
            submission = _lock_submission(db, submission_id)
            if not submission:
                raise SubmissionNotFound()
            if submission.status != SubmissionStatus.COMPLETED:
                raise InvalidStateError("Only completed submissions can be approved")
            if submission.is_checked_by_teacher:
                raise ReviewAlreadyApproved()

            pending = _ungraded_count(db, submission_id)
            if pending:
                raise GradingIncomplete(f"{pending} answer(s) still need grading")

            submission.is_checked_by_teacher = True
            submission.checked_by = reviewer_id
            submission.checked_at = utcnow()
            db.commit()
            db.refresh(submission)
        except Exception:
            db.rollback()
            raise

        logger.info(f"Submission {submission_id} approved by {reviewer_id}")
        student = submission.user
        return ReviewApproval(
            submission_id=submission.id,
            student_id=student.id,
            student_name=student.display_name,
            assessment_title=submission.assessment.title,
            approved_at=submission.checked_at,
            obtained_marks=submission.obtained_marks,
            total_marks=submission.total_marks,
            percentage=submission.percentage,
            is_passed=submission.is_passed
        )

    # Reviewer read side
    @staticmethod
    def pending_grading_queue(db: Session, course_id: Optional[int] = None) -> List[Dict[str, Any]]:
        """Completed submissions waiting for approval, oldest first"""
        query = db.query(AssessmentSubmission).join(Assessment).filter(
            AssessmentSubmission.status == SubmissionStatus.COMPLETED,
            AssessmentSubmission.is_checked_by_teacher == False
        )
        if course_id:
            query = query.filter(Assessment.course_id == course_id)

        queue = []
        for submission in query.order_by(AssessmentSubmission.end_time, AssessmentSubmission.id).all():
            manual = [a for a in submission.answers if a.question.question_type.is_free_text]
            queue.append({
                "submission_id": submission.id,
                "assessment_id": submission.assessment_id,
                "assessment_title": submission.assessment.title,
                "course_id": submission.assessment.course_id,
                "student": {
                    "id": submission.user.id,
                    "name": submission.user.display_name,
                    "email": submission.user.email,
                },
                "attempt_number": submission.attempt_number,
                "submitted_at": submission.end_time,
                "obtained_marks": submission.obtained_marks,
                "total_marks": submission.total_marks,
                "percentage": submission.percentage,
                "manual_answers": len(manual),
                "ungraded_answers": sum(1 for a in manual if a.needs_grading),
            })
        return queue

    @staticmethod
    def submission_details(db: Session, submission_id: int) -> Dict[str, Any]:
        submission = db.query(AssessmentSubmission).filter(
            AssessmentSubmission.id == submission_id
        ).first()
        if not submission:
            raise SubmissionNotFound()

        answers = {a.question_id: a for a in submission.answers}
        items = []
        for question in ordered_questions(submission.assessment, submission):
            answer = answers.get(question.id)
            correct = question.correct_option
            items.append({
                "question_id": question.id,
                "question_text": question.question_text,
                "question_type": question.question_type.value,
                "max_marks": question.marks,
                "answer_id": answer.id if answer else None,
                "selected_option_id": answer.selected_option_id if answer else None,
                "selected_option_text": answer.selected_option.option_text if answer and answer.selected_option else None,
                "correct_option_id": correct.id if correct else None,
                "text_answer": answer.text_answer if answer else None,
                "marks_obtained": answer.marks_obtained if answer else 0,
                "is_correct": answer.is_correct if answer else False,
                "is_graded": answer.is_graded if answer else False,
                "needs_grading": answer.needs_grading if answer else False,
                "explanation": question.explanation,
            })

        return {
            "submission_id": submission.id,
            "assessment": {"id": submission.assessment.id, "title": submission.assessment.title},
            "student": {
                "id": submission.user.id,
                "name": submission.user.display_name,
                "email": submission.user.email,
            },
            "attempt_number": submission.attempt_number,
            "status": submission.status.value,
            "start_time": submission.start_time,
            "end_time": submission.end_time,
            "time_spent": submission.time_spent,
            "obtained_marks": submission.obtained_marks,
            "total_marks": submission.total_marks,
            "percentage": submission.percentage,
            "is_passed": submission.is_passed,
            "is_checked_by_teacher": submission.is_checked_by_teacher,
            "checked_by": submission.checked_by,
            "checked_at": submission.checked_at,
            "answers": items,
        }

    @staticmethod
    def list_assessment_submissions(
        db: Session,
        assessment_id: int,
        status: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        """status filter: pending (completed, unapproved) or checked"""
        if not db.query(Assessment.id).filter(Assessment.id == assessment_id).first():
            raise AssessmentNotFound()

        query = db.query(AssessmentSubmission).filter(
            AssessmentSubmission.assessment_id == assessment_id
        )
        if status == "pending":
            query = query.filter(
                AssessmentSubmission.status == SubmissionStatus.COMPLETED,
                AssessmentSubmission.is_checked_by_teacher == False
            )
        elif status == "checked":
            query = query.filter(AssessmentSubmission.is_checked_by_teacher == True)

        return [
            {
                "submission_id": s.id,
                "student_id": s.user_id,
                "student_name": s.user.display_name,
                "attempt_number": s.attempt_number,
                "status": s.status.value,
                "submitted_at": s.end_time,
                "time_spent": s.time_spent,
                "obtained_marks": s.obtained_marks,
                "total_marks": s.total_marks,
                "percentage": s.percentage,
                "is_passed": s.is_passed,
                "is_checked_by_teacher": s.is_checked_by_teacher,
            } for s in query.order_by(AssessmentSubmission.id.desc()).all()
        ]

grading_service = GradingService()
