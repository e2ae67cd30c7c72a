"""Student-facing result views.

Marks, percentage, pass state and per-answer details are withheld from
every view until a reviewer has approved the submission.
"""
from typing import List, Dict, Any
from sqlalchemy.orm import Session
from app.models.assessments import Assessment, AssessmentSubmission, SubmissionStatus
from app.services.attempts import student_status
from app.services.course_service import course_service
from app.errors import NotEnrolled, ResultsPending, SubmissionNotFound
import logging

logger = logging.getLogger(__name__)

PENDING_MESSAGE = "Your assessment has been submitted and result is pending teacher review"
REVIEWED_MESSAGE = "Your assessment has been reviewed. You can now view your detailed results."

class ResultsService:

    @staticmethod
    def my_results(db: Session, user_id: int) -> List[Dict[str, Any]]:
        submissions = db.query(AssessmentSubmission).filter(
            AssessmentSubmission.user_id == user_id,
            AssessmentSubmission.status == SubmissionStatus.COMPLETED
        ).order_by(AssessmentSubmission.end_time.desc(), AssessmentSubmission.id.desc()).all()

        results = []
        for sub in submissions:
            base = {
                "submission_id": sub.id,
                "assessment_id": sub.assessment_id,
                "assessment_title": sub.assessment.title,
                "course_name": sub.assessment.course.title,
                "attempt_number": sub.attempt_number,
                "submitted_at": sub.end_time,
            }
            if not sub.is_checked_by_teacher:
                base.update({
                    "status": "PENDING_REVIEW",
                    "message": PENDING_MESSAGE,
                    "obtained_marks": None,
                    "total_marks": None,
                    "percentage": None,
                    "is_passed": None,
                    "can_review": False,
                })
            else:
                base.update({
                    "status": "GRADED",
                    "message": REVIEWED_MESSAGE,
                    "obtained_marks": sub.obtained_marks,
                    "total_marks": sub.assessment.total_marks,
                    "percentage": sub.percentage,
                    "is_passed": sub.is_passed,
                    "time_spent": sub.time_spent,
                    "can_review": True,
                    "checked_at": sub.checked_at,
                })
            results.append(base)
        return results

    @staticmethod
    def review_submission(db: Session, submission_id: int, user_id: int) -> Dict[str, Any]:
        """Detailed answer review of one approved submission"""
        submission = db.query(AssessmentSubmission).filter(
            AssessmentSubmission.id == submission_id,
            AssessmentSubmission.user_id == user_id,
            AssessmentSubmission.status == SubmissionStatus.COMPLETED
        ).first()
        if not submission:
            raise SubmissionNotFound()
        if not submission.is_checked_by_teacher:
            raise ResultsPending(
                f"{PENDING_MESSAGE}. You will be able to review once the teacher completes grading."
            )

        answers = sorted(submission.answers, key=lambda a: (a.question.order, a.question_id))
        detailed = []
        for answer in answers:
            question = answer.question
            correct = question.correct_option
            detailed.append({
                "question_text": question.question_text,
                "question_type": question.question_type.value,
                "marks": question.marks,
                "marks_obtained": answer.marks_obtained,
                "is_correct": answer.is_correct,
                "your_answer": answer.selected_option.option_text if answer.selected_option else answer.text_answer,
                "correct_answer": correct.option_text if correct else None,
                "explanation": question.explanation,
                "all_options": [
                    {
                        "text": opt.option_text,
                        "is_correct": opt.is_correct,
                        "was_selected": opt.id == answer.selected_option_id,
                    } for opt in question.options
                ],
            })

        return {
            "submission": {
                "submission_id": submission.id,
                "assessment_title": submission.assessment.title,
                "course_name": submission.assessment.course.title,
                "attempt_number": submission.attempt_number,
                "obtained_marks": submission.obtained_marks,
                "total_marks": submission.total_marks,
                "percentage": submission.percentage,
                "is_passed": submission.is_passed,
                "time_spent": submission.time_spent,
                "submitted_at": submission.end_time,
            },
            "answers": detailed,
        }

    @staticmethod
    def course_progress(db: Session, course_id: int, user_id: int) -> List[Dict[str, Any]]:
        if not course_service.is_enrolled(db, user_id, course_id):
            raise NotEnrolled()

        assessments = db.query(Assessment).filter(
            Assessment.course_id == course_id,
            Assessment.is_active == True
        ).order_by(Assessment.id).all()

        progress = []
        for assessment in assessments:
            submissions = sorted(
                (s for s in assessment.submissions if s.user_id == user_id),
                key=lambda s: s.attempt_number,
                reverse=True
            )
            latest = submissions[0] if submissions else None
            approved = [
                s for s in submissions
                if s.status == SubmissionStatus.COMPLETED and s.is_checked_by_teacher
            ]

            status = student_status(latest)

            latest_attempt = None
            if latest:
                checked = latest.is_checked_by_teacher
                latest_attempt = {
                    "attempt_number": latest.attempt_number,
                    "obtained_marks": latest.obtained_marks if checked else None,
                    "percentage": latest.percentage if checked else None,
                    "is_passed": latest.is_passed if checked else None,
                    "submitted_at": latest.end_time,
                    "is_checked_by_teacher": checked,
                }

            progress.append({
                "assessment_id": assessment.id,
                "title": assessment.title,
                "total_marks": assessment.total_marks,
                "passing_marks": assessment.passing_marks,
                "max_attempts": assessment.attempts,
                "status": status,
                "latest_attempt": latest_attempt,
                "attempts_used": len(submissions),
                "attempts_remaining": max(0, assessment.attempts - len(submissions)),
                "best_score": max(s.percentage for s in approved) if approved else None,
            })
        return progress

results_service = ResultsService()
