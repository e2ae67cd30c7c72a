from typing import List, Dict, Any
from sqlalchemy.orm import Session
from app.models.assessments import Assessment, SubmissionAnswer, SubmissionStatus
from app.schemas.assessments import AnalyticsOverview, AssessmentAnalytics
from app.services.course_service import course_service
from app.services.scoring import compute_percentage, round_half_up
from app.errors import AssessmentNotFound
import logging

logger = logging.getLogger(__name__)

SCORE_BUCKETS = [("0-20", 20), ("21-40", 40), ("41-60", 60), ("61-80", 80), ("81-100", None)]

def score_distribution(percentages: List[float]) -> Dict[str, int]:
    distribution = {label: 0 for label, _ in SCORE_BUCKETS}
    for value in percentages:
        for label, upper in SCORE_BUCKETS:
            if upper is None or value <= upper:
                distribution[label] += 1
                break
    return distribution

def difficulty_label(accuracy: float) -> str:
    if accuracy > 70:
        return "Easy"
    if accuracy > 40:
        return "Medium"
    return "Hard"

def _rate(part: int, whole: int) -> float:
    return compute_percentage(part, whole) if whole else 0

class AnalyticsService:
    """Reviewer statistics, computed over approved submissions only"""

    @staticmethod
    def assessment_analytics(db: Session, assessment_id: int) -> AssessmentAnalytics:
        assessment = db.query(Assessment).filter(Assessment.id == assessment_id).first()
        if not assessment:
            raise AssessmentNotFound()

        completed = [s for s in assessment.submissions if s.status == SubmissionStatus.COMPLETED]
        checked = [s for s in completed if s.is_checked_by_teacher]
        checked_ids = {s.id for s in checked}
        passed = sum(1 for s in checked if s.is_passed)
        average = sum(s.percentage for s in checked) / len(checked) if checked else 0

        overview = AnalyticsOverview(
            total_submissions=len(completed),
            checked_submissions=len(checked),
            pending_review=len(completed) - len(checked),
            total_students=len({s.user_id for s in checked}),
            total_attempts=len(checked),
            passed_count=passed,
            pass_rate=_rate(passed, len(checked)),
            average_score=round_half_up(average),
            score_distribution=score_distribution([s.percentage for s in checked])
        )

        question_analytics = []
        for question in assessment.questions:
            answers = []
            if checked_ids:
                answers = db.query(SubmissionAnswer).filter(
                    SubmissionAnswer.question_id == question.id,
                    SubmissionAnswer.submission_id.in_(checked_ids)
                ).all()
            correct = sum(1 for a in answers if a.is_correct)
            accuracy = _rate(correct, len(answers))
            question_analytics.append({
                "question_id": question.id,
                "question_text": question.question_text[:100],
                "question_type": question.question_type.value,
                "total_attempts": len(answers),
                "correct_attempts": correct,
                "accuracy": accuracy,
                "difficulty": difficulty_label(accuracy),
            })

        student_performance = [
            {
                "student_id": s.user.id,
                "student_email": s.user.email,
                "attempt_number": s.attempt_number,
                "obtained_marks": s.obtained_marks,
                "total_marks": s.total_marks,
                "percentage": s.percentage,
                "is_passed": s.is_passed,
                "time_spent": s.time_spent,
                "submitted_at": s.end_time,
                "checked_at": s.checked_at,
            } for s in checked
        ]

        return AssessmentAnalytics(
            overview=overview,
            question_analytics=question_analytics,
            student_performance=student_performance
        )

    @staticmethod
    def course_analytics(db: Session, course_id: int) -> List[Dict[str, Any]]:
        course = course_service.get_course_or_404(db, course_id)

        analytics = []
        for assessment in sorted(course.assessments, key=lambda a: a.id):
            completed = [s for s in assessment.submissions if s.status == SubmissionStatus.COMPLETED]
            checked = [s for s in completed if s.is_checked_by_teacher]
            students = len({s.user_id for s in completed})
            passed = sum(1 for s in checked if s.is_passed)
            average = sum(s.percentage for s in checked) / len(checked) if checked else 0

            analytics.append({
                "assessment_id": assessment.id,
                "title": assessment.title,
                "total_questions": len(assessment.questions),
                "total_students": students,
                "total_submissions": len(assessment.submissions),
                "checked_submissions": len(checked),
                "pending_review": len(completed) - len(checked),
                "completion_rate": _rate(len(completed), students),
                "pass_rate": _rate(passed, len(checked)),
                "average_score": round_half_up(average),
            })
        return analytics

analytics_service = AnalyticsService()
